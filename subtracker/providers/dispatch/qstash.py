"""Очередь доставки Upstash QStash.

QStash принимает сообщение для нашего webhook и вызывает его
не раньше указанного момента, повторяя неудачные вызовы.

Документация: https://upstash.com/docs/qstash/api/publish

Публикация:
    POST {qstash_url}/v2/publish/{callback_url}
    Authorization: Bearer <token>
    Upstash-Not-Before: <unix seconds>
    Upstash-Retries: <n>
    → {"messageId": "msg_..."}

Отмена:
    DELETE {qstash_url}/v2/messages/{messageId}

Подпись вызова webhook:
    Upstash-Signature: JWT (HS256) с claims iss="Upstash", sub=<callback_url>,
    exp/nbf и body=base64url(sha256(тело запроса)).
    Подписывается текущим ключом, после ротации — следующим.
    Документация: https://upstash.com/docs/qstash/howto/signature
"""

import base64
import hashlib
import hmac
from datetime import datetime
from typing import Any

import httpx
import jwt
from typing_extensions import override

from subtracker.core.exceptions import DeliveryFailed
from subtracker.providers.dispatch.base import BaseDispatchBoundary
from subtracker.utils.logging import get_logger
from subtracker.utils.timezone import ensure_utc_aware

logger = get_logger(__name__)

# Таймаут HTTP-запросов по умолчанию (секунды)
HTTP_TIMEOUT = 10.0

# Допустимое расхождение часов при проверке exp/nbf подписи (секунды)
SIGNATURE_LEEWAY = 5


class QStashDispatchBoundary(BaseDispatchBoundary):
    """Очередь доставки через Upstash QStash.

    Пример:
        boundary = QStashDispatchBoundary(
            base_url="https://qstash.upstash.io",
            token="...",
            callback_url="https://example.com/api/v1/workflows/subscription/reminder-task",
            signing_keys=("sig_current...", "sig_next..."),
        )
        run_id = await boundary.schedule(payload, not_before, retries=3)
    """

    NAME = "qstash"

    def __init__(
        self,
        base_url: str,
        token: str,
        callback_url: str,
        *,
        signing_keys: tuple[str, ...] = (),
        timeout: float = HTTP_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Создать адаптер QStash.

        Args:
            base_url: Адрес API QStash.
            token: Токен QStash.
            callback_url: Публичный адрес нашего webhook доставки.
            signing_keys: Ключи подписи webhook (текущий, затем следующий).
            timeout: Таймаут HTTP-запросов в секундах.
            client: Готовый HTTP-клиент (для тестов с MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._callback_url = callback_url
        self._signing_keys = tuple(key for key in signing_keys if key)
        self._timeout = timeout
        self._client = client

    @property
    @override
    def name(self) -> str:
        return self.NAME

    async def _get_client(self) -> httpx.AsyncClient:
        """Получить или создать HTTP-клиент с авторизацией."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        return self._client

    @override
    async def close(self) -> None:
        """Закрыть HTTP-клиент."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @override
    async def schedule(
        self,
        payload: dict[str, Any],
        not_before: datetime,
        retries: int,
    ) -> str:
        """Опубликовать сообщение с отложенной доставкой.

        Raises:
            DeliveryFailed: Сетевая ошибка, ответ 5xx/4xx или нет messageId.
        """
        headers = {
            "Upstash-Not-Before": str(int(ensure_utc_aware(not_before).timestamp())),
            "Upstash-Retries": str(retries),
        }

        try:
            client = await self._get_client()
            response = await client.post(
                f"/v2/publish/{self._callback_url}",
                json=payload,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise DeliveryFailed(
                f"QStash недоступен: {e}",
                channel=self.NAME,
                original_error=e,
            ) from e

        if response.status_code >= 400:
            raise DeliveryFailed(
                f"Ошибка QStash API: HTTP {response.status_code} {response.text}",
                channel=self.NAME,
            )

        message_id = response.json().get("messageId")
        if not message_id:
            raise DeliveryFailed("QStash не вернул messageId", channel=self.NAME)

        logger.debug(
            "QStash: опубликовано %s (%s), not_before=%s",
            message_id,
            payload.get("reminderLabel"),
            headers["Upstash-Not-Before"],
        )
        return str(message_id)

    @override
    async def cancel(self, run_id: str) -> bool:
        """Удалить ещё не доставленное сообщение.

        Returns:
            True если удалено, False если QStash его не знает (404)
            или запрос не удался.
        """
        try:
            client = await self._get_client()
            response = await client.delete(f"/v2/messages/{run_id}")
        except httpx.HTTPError as e:
            logger.warning("QStash: не удалось отменить %s: %s", run_id, e)
            return False

        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            logger.warning(
                "QStash: отмена %s вернула HTTP %s", run_id, response.status_code
            )
            return False
        return True

    @override
    async def verify_webhook(self, payload: bytes, signature: str) -> bool:
        """Проверить заголовок Upstash-Signature.

        Подпись принимается, если JWT подписан одним из ключей, выпущен
        QStash для нашего webhook, не просрочен и содержит хеш именно
        этого тела запроса.

        Args:
            payload: Сырое тело HTTP-запроса.
            signature: Значение заголовка Upstash-Signature.

        Returns:
            True если подпись валидна.
        """
        if not self._signing_keys:
            logger.warning("QStash: ключи подписи не настроены — вызов отклонён")
            return False

        if not signature:
            logger.warning("QStash webhook без подписи")
            return False

        claims: dict[str, Any] | None = None
        for key in self._signing_keys:
            try:
                claims = jwt.decode(
                    signature,
                    key,
                    algorithms=["HS256"],
                    issuer="Upstash",
                    leeway=SIGNATURE_LEEWAY,
                    options={"require": ["iss", "sub", "exp", "nbf", "body"]},
                )
                break
            except jwt.InvalidTokenError as e:
                logger.debug("QStash: подпись не подошла к ключу: %s", e)

        if claims is None:
            logger.warning("QStash webhook: невалидная подпись")
            return False

        if claims["sub"] != self._callback_url:
            logger.warning("QStash webhook: подпись выдана для %s", claims["sub"])
            return False

        body_hash = base64.urlsafe_b64encode(hashlib.sha256(payload).digest())
        expected = body_hash.decode().rstrip("=")
        if not hmac.compare_digest(str(claims["body"]).rstrip("="), expected):
            logger.warning("QStash webhook: хеш тела не совпадает с подписью")
            return False

        return True
