"""
Image folder classifier.

Fine-tunes a pre-trained network on a folder of images where each
subdirectory names a class, then evaluates and saves the model.
"""

__version__ = "0.1.0"
