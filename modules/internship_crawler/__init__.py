from . import lib  # so: from modules.internship_crawler import lib
from .main import run  # so: from modules.internship_crawler import run

__all__ = ["lib", "run"]
