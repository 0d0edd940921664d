"""screenmatch: perceptual-hash screen template matching for OCR pipelines."""

__version__ = "0.1.0"
