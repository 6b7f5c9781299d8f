from .options import LifecycleOptions, load_options, options_from_dict

__all__ = [
    "LifecycleOptions",
    "load_options",
    "options_from_dict",
]
