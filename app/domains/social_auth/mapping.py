"""
File: app/domains/social_auth/mapping.py
Description: 三方 payload 字段映射 (Field Mapping Resolver)

不同平台的 payload 字段名各不相同 (Google: given_name / picture，GitHub: login / avatar_url ...)，
本模块通过可配置的别名列表将其翻译为规范字段：
- 规范字段未配置时，回退为 [规范字段本身]
- 单个裸值视为只有一个元素的列表
- 非字符串或空字符串别名直接跳过
- 按顺序取第一个"存在且非 None"的值

纯函数，无副作用；格式错误的配置按"未配置"处理，绝不抛异常。

Author: jinmozhe
Created: 2026-10-18
"""

from collections.abc import Mapping
from typing import Any


class FieldMapper:
    """规范字段提取器"""

    def __init__(self, mapping: Any):
        # 整个映射不是字典时视为完全未配置
        self._mapping: Mapping[str, Any] = mapping if isinstance(mapping, Mapping) else {}

    def aliases(self, canonical_key: str) -> list[str]:
        """返回规范字段对应的有效别名列表 (保持配置顺序)"""
        raw = self._mapping.get(canonical_key)
        if raw is None:
            raw = [canonical_key]
        elif isinstance(raw, str) or not isinstance(raw, list | tuple):
            raw = [raw]

        return [alias for alias in raw if isinstance(alias, str) and alias]

    def extract(self, payload: Mapping[str, Any], canonical_key: str) -> Any:
        """
        提取规范字段的值。

        Returns:
            第一个存在且非 None 的别名值；全部缺失返回 None
        """
        for alias in self.aliases(canonical_key):
            value = payload.get(alias)
            if value is not None:
                return value
        return None

    def extract_str(self, payload: Mapping[str, Any], canonical_key: str) -> str | None:
        """提取字符串字段，去除首尾空白；非字符串或空白返回 None"""
        value = self.extract(payload, canonical_key)
        if not isinstance(value, str):
            return None
        return value.strip() or None
