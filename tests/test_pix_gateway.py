import json
import os
import unittest
from decimal import Decimal
from urllib.parse import parse_qs

import httpx

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from app.services.errors import AuthError, ChargeError, GatewayError, GatewayNotConfigured
from app.services.pix_gateway import (
    ChargeDescriptor,
    ClientCertificate,
    PixCredentials,
    PixGatewayClient,
    _mtls_client_factory,
)


CERT = ClientCertificate(cert_path="/nonexistent/certificado.crt", key_path="/nonexistent/chave.key")
CREDS = PixCredentials(client_id="cid", client_secret="secret", scope="pix.write")


class PixGatewayClientTests(unittest.TestCase):
    def setUp(self):
        self.requests: list[httpx.Request] = []
        self.responses: list = []

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def _client(self) -> PixGatewayClient:
        def factory(certificate, timeout):
            return httpx.Client(transport=httpx.MockTransport(self._handler), timeout=timeout)

        return PixGatewayClient(
            "https://cdpj.partners.bancointer.com.br",
            timeout=3.0,
            token_path="/oauth/v2/token",
            charge_path="/pix/v2/cob",
            http_client_factory=factory,
        )

    def test_authenticate_posts_client_credentials_form(self):
        self.responses.append(httpx.Response(200, json={"access_token": "abc", "token_type": "Bearer"}))
        token = self._client().authenticate(CREDS, CERT)
        self.assertEqual(token, "abc")

        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/oauth/v2/token")
        form = parse_qs(request.content.decode("utf-8"))
        self.assertEqual(form["grant_type"], ["client_credentials"])
        self.assertEqual(form["scope"], ["pix.write"])
        self.assertEqual(form["client_id"], ["cid"])
        self.assertEqual(form["client_secret"], ["secret"])

    def test_authenticate_failure_keeps_provider_detail(self):
        body = {"error": "invalid_client", "error_description": "Client authentication failed"}
        self.responses.append(httpx.Response(401, json=body))
        with self.assertRaises(AuthError) as raised:
            self._client().authenticate(CREDS, CERT)
        self.assertIn("Client authentication failed", raised.exception.detail)
        self.assertEqual(raised.exception.provider_detail, body)
        self.assertTrue(raised.exception.configuration_problem)

    def test_scope_failure_is_reported_as_permission_problem(self):
        self.responses.append(httpx.Response(400, json={"error": "invalid_scope"}))
        with self.assertRaises(AuthError) as raised:
            self._client().authenticate(CREDS, CERT)
        self.assertIn("permissão", raised.exception.detail)

    def test_create_charge_payload(self):
        self.responses.append(
            httpx.Response(201, json={"txid": "abc123", "pixCopiaECola": "000201PIX", "status": "ATIVA"})
        )
        descriptor = ChargeDescriptor(
            amount=Decimal("150"),
            pix_key="financeiro@maat.com",
            payer_message="Servico REQ-2026-001",
            expiry_seconds=3600,
            payer_name="Empresa Demo LTDA",
            payer_document="12.345.678/0001-90",
        )
        result = self._client().create_charge("tok", descriptor, CERT)
        self.assertEqual(result.txid, "abc123")
        self.assertEqual(result.copy_paste_payload, "000201PIX")

        request = self.requests[0]
        self.assertEqual(request.url.path, "/pix/v2/cob")
        self.assertEqual(request.headers["Authorization"], "Bearer tok")
        payload = json.loads(request.content)
        self.assertEqual(payload["calendario"], {"expiracao": 3600})
        self.assertEqual(payload["valor"], {"original": "150.00"})
        self.assertEqual(payload["chave"], "financeiro@maat.com")
        self.assertEqual(payload["solicitacaoPagador"], "Servico REQ-2026-001")
        self.assertEqual(payload["devedor"], {"cnpj": "12345678000190", "nome": "Empresa Demo LTDA"})

    def test_create_charge_uses_cpf_or_omits_devedor(self):
        self.responses.append(httpx.Response(201, json={"txid": "t1", "pixCopiaECola": "x"}))
        self.responses.append(httpx.Response(201, json={"txid": "t2", "pixCopiaECola": "y"}))
        client = self._client()
        client.create_charge(
            "tok",
            ChargeDescriptor(amount=Decimal("50"), pix_key="k", payer_message="m", payer_name="Ana", payer_document="123.456.789-00"),
            CERT,
        )
        client.create_charge("tok", ChargeDescriptor(amount=Decimal("50"), pix_key="k", payer_message="m"), CERT)
        first = json.loads(self.requests[0].content)
        second = json.loads(self.requests[1].content)
        self.assertEqual(first["devedor"], {"cpf": "12345678900", "nome": "Ana"})
        self.assertNotIn("devedor", second)

    def test_create_charge_rejection_and_missing_txid(self):
        body = {"title": "Chave não pertence ao recebedor", "status": 400}
        self.responses.append(httpx.Response(400, json=body))
        self.responses.append(httpx.Response(201, json={"pixCopiaECola": "x"}))
        client = self._client()
        descriptor = ChargeDescriptor(amount=Decimal("1"), pix_key="k", payer_message="m")
        with self.assertRaises(ChargeError) as raised:
            client.create_charge("tok", descriptor, CERT)
        self.assertEqual(raised.exception.http_status, 400)
        self.assertEqual(raised.exception.provider_detail, body)
        self.assertIn("Chave não pertence ao recebedor", raised.exception.detail)
        self.assertTrue(raised.exception.configuration_problem)

        with self.assertRaises(ChargeError):
            client.create_charge("tok", descriptor, CERT)

    def test_server_error_is_not_configuration_problem(self):
        self.responses.append(httpx.Response(503, text="upstream down"))
        with self.assertRaises(ChargeError) as raised:
            self._client().create_charge("tok", ChargeDescriptor(amount=Decimal("1"), pix_key="k", payer_message="m"), CERT)
        self.assertFalse(raised.exception.configuration_problem)
        self.assertEqual(raised.exception.provider_detail, "upstream down")

    def test_transport_failure_becomes_gateway_error(self):
        self.responses.append(httpx.ConnectTimeout("timed out"))
        with self.assertRaises(GatewayError) as raised:
            self._client().authenticate(CREDS, CERT)
        self.assertNotIsInstance(raised.exception, AuthError)
        self.assertEqual(raised.exception.status_code, 504)

    def test_fetch_charge_reports_paid_status(self):
        self.responses.append(httpx.Response(200, json={"txid": "abc", "status": "CONCLUIDA"}))
        self.responses.append(httpx.Response(200, json={"txid": "def", "status": "ATIVA"}))
        client = self._client()
        self.assertTrue(client.fetch_charge("tok", "abc", CERT).paid)
        self.assertFalse(client.fetch_charge("tok", "def", CERT).paid)
        self.assertEqual(self.requests[0].method, "GET")
        self.assertEqual(self.requests[0].url.path, "/pix/v2/cob/abc")

    def test_check_connection_authenticates(self):
        self.responses.append(httpx.Response(200, json={"access_token": "abc"}))
        result = self._client().check_connection(
            PixCredentials(client_id="cid", client_secret="secret", scope="pix.read"), CERT
        )
        self.assertTrue(result["ok"])
        self.assertEqual(result["scope"], "pix.read")

    def test_unreadable_certificate_is_configuration_error(self):
        with self.assertRaises(GatewayNotConfigured):
            _mtls_client_factory(CERT, 1.0)
