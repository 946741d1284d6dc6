# Models package
from .interval import IntervalRecord
from .alert import AlertRecord

__all__ = ['IntervalRecord', 'AlertRecord']
