from ._numpy_backend import NumpyBackend, output_spatial_size

__all__ = [
    NumpyBackend.__name__,
    output_spatial_size.__name__,
]
