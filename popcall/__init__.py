"""popcall: lowest-latency POP selection and call session control."""

__version__ = "0.1.0"
