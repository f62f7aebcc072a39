__version__ = "0.4.0"
__description__ = "sapanel : SQLAlchemy Flask admin panel toolkit"
