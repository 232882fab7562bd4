"""Адаптеры внешних границ.

- dispatch/ — очередь отложенной доставки напоминаний (локальная, QStash)
- notifications/ — отправка уведомлений владельцам
"""
