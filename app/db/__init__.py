from .base import Base
from .models.product import Product  # Registers products table
from .models.review import Review  # Registers reviews table
