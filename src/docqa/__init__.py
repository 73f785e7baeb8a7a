"""DocQA — retrieval-augmented question answering over a directory of
PDF and text documents."""

__version__ = "0.1.0"
