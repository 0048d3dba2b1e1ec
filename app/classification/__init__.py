from app.classification.base import BaseClassifier
from app.classification.classifier import Classifier
from app.classification.factory import ClassifierFactory
from app.classification.models import DocumentKind, ExtractedData, Verdict

__all__ = [
    "BaseClassifier",
    "Classifier",
    "ClassifierFactory",
    "DocumentKind",
    "ExtractedData",
    "Verdict",
]
