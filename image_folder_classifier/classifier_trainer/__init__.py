"""
Image Classifier Training Component.

Builds the transfer-learning pipeline, trains it, evaluates it and
persists the fitted model.
"""
