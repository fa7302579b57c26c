"""端点探测模块"""

from .classifiers import (BodyClassifier, ClassifierRegistry, classifier_registry,
                          register_body_classifier, json_status_classifier)
from .prober import EndpointProber

__all__ = ['BodyClassifier', 'ClassifierRegistry', 'classifier_registry',
           'register_body_classifier', 'json_status_classifier', 'EndpointProber']
