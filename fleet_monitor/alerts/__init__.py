"""告警模块"""

from .base import BaseNotifier
from .teams_notifier import TeamsNotifier
from .email_notifier import EmailNotifier
from .manager import NotifierManager
from .reconciler import AlertReconciler

__all__ = [
    'BaseNotifier',
    'TeamsNotifier',
    'EmailNotifier',
    'NotifierManager',
    'AlertReconciler'
]
