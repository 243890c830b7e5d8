from .observer import MatrixObserver

__all__ = ["MatrixObserver"]
