"""SessionHub: booking marketplace backend with scheduled notification delivery"""

__version__ = "0.1.0"
