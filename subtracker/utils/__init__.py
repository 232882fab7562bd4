"""Вспомогательные модули.

Содержит утилиты для:
- Логирования (logging.py)
- Работы с часовыми поясами (timezone.py)
"""
