"""Translation progress watcher for translate.wordpress.org projects."""

__version__ = "0.1.0"
