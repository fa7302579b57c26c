"""响应体分类器

分类器是 ``Callable[[str], Optional[ProbeStatus]]``，在HTTP状态码分类之上
根据响应体给出覆盖结论；返回 None 表示不发表意见。
"""

import json
from typing import Callable, Dict, List, Optional

from ..models.health_check import ProbeStatus
from ..utils.exceptions import ConfigError, ErrorCode

BodyClassifier = Callable[[str], Optional[ProbeStatus]]


class ClassifierRegistry:
    """分类器注册表，按名称管理响应体分类器"""

    def __init__(self):
        self._classifiers: Dict[str, BodyClassifier] = {}

    def register(self, name: str, classifier: BodyClassifier):
        """
        注册分类器

        Raises:
            ConfigError: 名称已被注册
        """
        if name in self._classifiers:
            raise ConfigError(f"响应体分类器 '{name}' 已经注册")
        self._classifiers[name] = classifier

    def unregister(self, name: str):
        self._classifiers.pop(name, None)

    def get(self, name: str) -> BodyClassifier:
        """
        按名称获取分类器

        Raises:
            ConfigError: 分类器不存在
        """
        if name not in self._classifiers:
            raise ConfigError(
                f"不支持的响应体分类器: '{name}'",
                error_code=ErrorCode.CLASSIFIER_NOT_FOUND)
        return self._classifiers[name]

    def resolve(self, names: List[str]) -> List[BodyClassifier]:
        return [self.get(name) for name in names]

    def get_supported_names(self) -> List[str]:
        return list(self._classifiers.keys())


# 全局注册表实例
classifier_registry = ClassifierRegistry()


def register_body_classifier(name: str):
    """
    装饰器：注册响应体分类器

    Args:
        name: 分类器名称
    """
    def decorator(classifier: BodyClassifier) -> BodyClassifier:
        classifier_registry.register(name, classifier)
        return classifier

    return decorator


JSON_STATUS_MAPPING = {
    'Healthy': ProbeStatus.UP,
    'Unhealthy': ProbeStatus.DOWN,
    'Degraded': ProbeStatus.DOWN,
}


@register_body_classifier('json_status')
def json_status_classifier(body: str) -> Optional[ProbeStatus]:
    """读取JSON顶层的 status 字段（ASP.NET Core 健康检查格式）"""
    if not body:
        return None

    try:
        data = json.loads(body)
    except (ValueError, TypeError):
        return None

    if not isinstance(data, dict):
        return None

    value = data.get('status')
    if not isinstance(value, str):
        return None

    return JSON_STATUS_MAPPING.get(value)
