from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable

import httpx

from app.core.config import settings
from app.services.errors import AuthError, ChargeError, GatewayError, GatewayNotConfigured

logger = logging.getLogger("app.payments")

PAID_PROVIDER_STATUSES = {"CONCLUIDA"}


@dataclass(frozen=True)
class PixCredentials:
    client_id: str
    client_secret: str
    scope: str


@dataclass(frozen=True)
class ClientCertificate:
    cert_path: str
    key_path: str

    def exists(self) -> bool:
        return Path(self.cert_path).is_file() and Path(self.key_path).is_file()


@dataclass(frozen=True)
class ChargeDescriptor:
    amount: Decimal
    pix_key: str
    payer_message: str
    expiry_seconds: int = 3600
    payer_name: str = ""
    payer_document: str = ""


@dataclass(frozen=True)
class ChargeResult:
    txid: str
    copy_paste_payload: str


@dataclass(frozen=True)
class ChargeStatus:
    txid: str
    provider_status: str

    @property
    def paid(self) -> bool:
        return self.provider_status.upper() in PAID_PROVIDER_STATUSES


@dataclass(frozen=True)
class PixGatewayConfig:
    enabled: bool
    base_url: str
    client_id: str
    client_secret: str
    pix_key: str
    certificate: ClientCertificate
    write_scope: str
    read_scope: str
    expiry_seconds: int
    timeout_seconds: float

    @classmethod
    def from_settings(cls) -> "PixGatewayConfig":
        return cls(
            enabled=bool(settings.PIX_ENABLED),
            base_url=str(settings.PIX_API_BASE_URL or "").strip().rstrip("/"),
            client_id=str(settings.PIX_CLIENT_ID or "").strip(),
            client_secret=str(settings.PIX_CLIENT_SECRET or "").strip(),
            pix_key=str(settings.PIX_KEY or "").strip(),
            certificate=ClientCertificate(
                cert_path=str(settings.PIX_CERT_PATH or "").strip(),
                key_path=str(settings.PIX_KEY_PATH or "").strip(),
            ),
            write_scope=str(settings.PIX_WRITE_SCOPE or "pix.write").strip(),
            read_scope=str(settings.PIX_READ_SCOPE or "pix.read").strip(),
            expiry_seconds=int(settings.PIX_CHARGE_EXPIRY_SECONDS or 3600),
            timeout_seconds=float(settings.PIX_HTTP_TIMEOUT_SECONDS or 15.0),
        )

    def missing(self) -> list[str]:
        problems: list[str] = []
        if not self.enabled:
            problems.append("PIX_ENABLED")
        if not self.base_url:
            problems.append("PIX_API_BASE_URL")
        if not self.client_id:
            problems.append("PIX_CLIENT_ID")
        if not self.client_secret:
            problems.append("PIX_CLIENT_SECRET")
        if not self.pix_key:
            problems.append("PIX_KEY")
        if not self.certificate.exists():
            problems.append("PIX_CERT_PATH/PIX_KEY_PATH")
        return problems

    def ensure_configured(self) -> None:
        problems = self.missing()
        if problems:
            raise GatewayNotConfigured(
                "Integração PIX não configurada: verifique " + ", ".join(problems),
                provider_detail={"missing": problems},
            )

    def credentials(self, scope: str | None = None) -> PixCredentials:
        return PixCredentials(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=scope or self.write_scope,
        )


def _mtls_client_factory(certificate: ClientCertificate, timeout: float) -> httpx.Client:
    try:
        context = ssl.create_default_context()
        context.load_cert_chain(certfile=certificate.cert_path, keyfile=certificate.key_path)
    except (OSError, ssl.SSLError) as exc:
        raise GatewayNotConfigured(
            "Certificado .crt e chave .key do PIX não puderam ser carregados",
            provider_detail=str(exc),
        ) from exc
    return httpx.Client(verify=context, timeout=timeout)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _provider_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ("error_description", "error", "title", "detail"):
            value = str(body.get(key) or "").strip()
            if value:
                return value
    text = str(body or "").strip()
    return text or fallback


def _payer(descriptor: ChargeDescriptor) -> dict[str, str] | None:
    digits = "".join(ch for ch in str(descriptor.payer_document or "") if ch.isdigit())
    name = str(descriptor.payer_name or "").strip() or "Cliente"
    if len(digits) == 11:
        return {"cpf": digits, "nome": name}
    if len(digits) == 14:
        return {"cnpj": digits, "nome": name}
    return None


class PixGatewayClient:
    """Thin synchronous client for the Banco Inter PIX API v2.

    Every call opens its own mutual-TLS connection and is tried exactly once;
    callers decide whether to retry. Provider error bodies are kept verbatim in
    ``provider_detail`` so an operator can tell a scope problem from an outage.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        token_path: str | None = None,
        charge_path: str | None = None,
        http_client_factory: Callable[[ClientCertificate, float], httpx.Client] | None = None,
    ):
        self.base_url = str(base_url or "").rstrip("/")
        self.timeout = timeout
        self.token_path = token_path or settings.PIX_TOKEN_PATH
        self.charge_path = (charge_path or settings.PIX_CHARGE_PATH).rstrip("/")
        self._client_factory = http_client_factory or _mtls_client_factory

    @classmethod
    def from_config(cls, config: PixGatewayConfig) -> "PixGatewayClient":
        return cls(config.base_url, timeout=config.timeout_seconds)

    def _open(self, certificate: ClientCertificate) -> httpx.Client:
        return self._client_factory(certificate, self.timeout)

    def authenticate(self, credentials: PixCredentials, certificate: ClientCertificate) -> str:
        form = {
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "scope": credentials.scope,
            "grant_type": "client_credentials",
        }
        try:
            with self._open(certificate) as client:
                response = client.post(f"{self.base_url}{self.token_path}", data=form)
        except httpx.HTTPError as exc:
            logger.warning("PIX token request failed: %s", exc)
            raise GatewayError("Falha de comunicação com o provedor PIX", provider_detail=str(exc)) from exc

        body = _response_body(response)
        if response.status_code >= 400:
            message = _provider_message(body, f"HTTP {response.status_code}")
            logger.warning("PIX token rejected status=%s body=%s", response.status_code, body)
            if "scope" in message.lower():
                detail = (
                    f'Erro de permissão: o provedor PIX retornou "{message}". '
                    "Verifique se a aplicação tem a permissão Pix ativa."
                )
            else:
                detail = f"Falha na autenticação PIX: {message}"
            raise AuthError(detail, provider_detail=body)

        token = str(body.get("access_token") or "").strip() if isinstance(body, dict) else ""
        if not token:
            raise AuthError("Resposta de autenticação PIX sem access_token", provider_detail=body)
        return token

    def create_charge(
        self,
        token: str,
        descriptor: ChargeDescriptor,
        certificate: ClientCertificate,
    ) -> ChargeResult:
        payload: dict[str, Any] = {
            "calendario": {"expiracao": int(descriptor.expiry_seconds)},
            "valor": {"original": f"{Decimal(descriptor.amount):.2f}"},
            "chave": descriptor.pix_key,
            "solicitacaoPagador": descriptor.payer_message,
        }
        payer = _payer(descriptor)
        if payer is not None:
            payload["devedor"] = payer

        try:
            with self._open(certificate) as client:
                response = client.post(
                    f"{self.base_url}{self.charge_path}",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            logger.warning("PIX charge request failed: %s", exc)
            raise GatewayError("Falha de comunicação com o provedor PIX", provider_detail=str(exc)) from exc

        body = _response_body(response)
        if response.status_code >= 400:
            logger.warning("PIX charge rejected status=%s body=%s", response.status_code, body)
            raise ChargeError(
                f"Falha ao gerar cobrança PIX: {_provider_message(body, f'HTTP {response.status_code}')}",
                provider_detail=body,
                http_status=response.status_code,
            )
        txid = str(body.get("txid") or "").strip() if isinstance(body, dict) else ""
        if not txid:
            raise ChargeError("Resposta do provedor PIX sem txid", provider_detail=body, http_status=response.status_code)
        copy_paste = str(body.get("pixCopiaECola") or "").strip()
        logger.info("PIX charge created txid=%s amount=%s", txid, payload["valor"]["original"])
        return ChargeResult(txid=txid, copy_paste_payload=copy_paste)

    def fetch_charge(self, token: str, txid: str, certificate: ClientCertificate) -> ChargeStatus:
        try:
            with self._open(certificate) as client:
                response = client.get(
                    f"{self.base_url}{self.charge_path}/{txid}",
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            raise GatewayError("Falha de comunicação com o provedor PIX", provider_detail=str(exc)) from exc

        body = _response_body(response)
        if response.status_code >= 400:
            raise ChargeError(
                f"Falha ao consultar cobrança PIX: {_provider_message(body, f'HTTP {response.status_code}')}",
                provider_detail=body,
                http_status=response.status_code,
            )
        status = str(body.get("status") or "").strip().upper() if isinstance(body, dict) else ""
        return ChargeStatus(txid=txid, provider_status=status)

    def check_connection(self, credentials: PixCredentials, certificate: ClientCertificate) -> dict[str, Any]:
        self.authenticate(credentials, certificate)
        return {
            "ok": True,
            "message": "Conexão PIX estabelecida com sucesso",
            "scope": credentials.scope,
        }
