"""数据模型模块"""

from .health_check import (Endpoint, ProbeStatus, ProbeOutcome, FailingEnv, RecoveredEnv,
                           ScanSummary, ScanResult)

__all__ = ['Endpoint', 'ProbeStatus', 'ProbeOutcome', 'FailingEnv', 'RecoveredEnv',
           'ScanSummary', 'ScanResult']
