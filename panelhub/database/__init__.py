from .unified_models import *
from .connection import init_database, close_database, create_tables, get_db
from .repository import PanelRepository
