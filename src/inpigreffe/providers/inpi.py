"""INPI (Registre National des Entreprises) API provider implementation."""

from __future__ import annotations

import json
import os
import re
import time
from collections import deque
from collections.abc import Sequence
from typing import Any, cast

import requests
from requests import Response
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..greffes.lookup import lookup_greffe
from ..siren import validate_and_extract_siren
from ..utils.logging_setup import setup_logger
from .base import CompanyRecord, Provider

_BASE_LOGGER = setup_logger()
LOGGER = _BASE_LOGGER.getChild("providers.inpi")

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_DEFAULT_TIMEOUT = (5.0, 30.0)
_SOURCE = "inpi_api"
_MAX_CALLS_PER_MINUTE = 30
_RATE_WINDOW_SECONDS = 60.0
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_MIN_PASSWORD_LENGTH = 6


class RateLimitExceededError(RuntimeError):
    """Raised when more than the allowed number of calls hit the API in a minute."""


class _RetryableRequestError(RuntimeError):
    """Error raised for retryable HTTP status codes."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    retry_obj = retry_state.retry_object
    max_attempts = "?"
    if isinstance(retry_obj, Retrying):
        stop = getattr(retry_obj, "stop", None)
        max_attempts = getattr(stop, "max_attempt_number", "?")
    if isinstance(exc, _RetryableRequestError) and exc.status_code is not None:
        LOGGER.warning(
            "Nouvel essai API INPI (tentative %s/%s) après statut %s",
            retry_state.attempt_number,
            max_attempts,
            exc.status_code,
        )
    else:
        LOGGER.warning(
            "Nouvel essai API INPI (tentative %s/%s) : %s",
            retry_state.attempt_number,
            max_attempts,
            exc,
        )


def _dig(payload: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


class INPIProvider(Provider):
    """Provider that retrieves company information from the INPI RNE API."""

    base_url = "https://registre-national-entreprises.inpi.fr"

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        *,
        base_url: str | None = None,
        timeout: Sequence[float] | None = None,
    ) -> None:
        self.username = (username or os.getenv("INPI_USERNAME") or "").strip()
        self.password = password or os.getenv("INPI_PASSWORD") or ""
        if not self.username or not self.password:
            raise RuntimeError(
                "INPI_USERNAME et INPI_PASSWORD doivent être définis "
                "(variables d'environnement ou paramètres)."
            )
        if not _EMAIL_PATTERN.match(self.username):
            raise RuntimeError("INPI_USERNAME doit être une adresse e-mail valide.")
        if len(self.password) < _MIN_PASSWORD_LENGTH:
            raise RuntimeError("INPI_PASSWORD semble invalide (trop court).")

        if base_url:
            self.base_url = base_url.rstrip("/")
        self._token: str | None = None
        self._call_times: deque[float] = deque()
        self._clock = time.monotonic

        if timeout is None:
            self._timeout = _DEFAULT_TIMEOUT
        elif len(timeout) == 1:
            self._timeout = (float(timeout[0]), _DEFAULT_TIMEOUT[1])
        else:
            connect, read = float(timeout[0]), float(timeout[1])
            self._timeout = (connect, read)

    def _check_rate_limit(self) -> None:
        now = self._clock()
        while self._call_times and self._call_times[0] <= now - _RATE_WINDOW_SECONDS:
            self._call_times.popleft()
        if len(self._call_times) >= _MAX_CALLS_PER_MINUTE:
            raise RateLimitExceededError(
                f"Limite atteinte : {_MAX_CALLS_PER_MINUTE} requêtes INPI par minute au maximum."
            )
        self._call_times.append(now)

    def _should_retry(self, response: Response) -> bool:
        return response.status_code in _RETRYABLE_STATUS_CODES

    def _perform_request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(5),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            retry=retry_if_exception_type(_RetryableRequestError),
            after=_log_retry,
        )

        for attempt in retrying:
            with attempt:
                return self._perform_request_once(method, path, payload=payload)
        return {}

    def _perform_request_once(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:  # pragma: no cover - erreur réseau
            raise _RetryableRequestError(str(exc)) from exc

        if response.status_code == 401:
            raise RuntimeError("Identifiants INPI invalides ou session expirée (HTTP 401).")
        if response.status_code == 403:
            raise RuntimeError("Accès refusé par l'API INPI (HTTP 403).")

        if response.status_code == 404:
            LOGGER.info("API INPI : aucun résultat (404) pour %s", path)
            return {}

        if self._should_retry(response):
            raise _RetryableRequestError(
                f"Retryable status code: {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            LOGGER.error("Erreur API INPI %s: %s", response.status_code, response.text)
            response.raise_for_status()

        if not response.content:
            return {}

        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise _RetryableRequestError("Réponse JSON invalide") from exc

        if isinstance(data, dict):
            return cast(dict[str, Any], data)

        LOGGER.debug("Réponse JSON au format inattendu: %s", type(data))
        return {}

    def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any] | None:
        """Run one API call. ``None`` means the retries were exhausted."""

        self._check_rate_limit()
        try:
            return self._perform_request(method, path, **kwargs)
        except RetryError as exc:
            last_exc = exc.last_attempt.exception()
            if isinstance(last_exc, _RetryableRequestError) and last_exc.status_code:
                LOGGER.error(
                    "API INPI en échec après plusieurs tentatives (statut %s)",
                    last_exc.status_code,
                )
            else:
                LOGGER.error("API INPI en échec après plusieurs tentatives: %s", exc)
            return None

    def login(self) -> str:
        """Open a session on the INPI SSO and return the bearer token."""

        self._token = None
        data = self._call(
            "POST",
            "/api/sso/login",
            payload={"username": self.username, "password": self.password},
        )
        token = (data or {}).get("token")
        if not isinstance(token, str) or not token:
            raise RuntimeError("Réponse de connexion INPI invalide (jeton absent).")
        self._token = token
        LOGGER.debug("Connexion INPI réussie pour %s", self.username)
        return token

    @staticmethod
    def _format_street(address: dict[str, Any]) -> str | None:
        parts = [
            address.get("numVoie") or address.get("numeroVoie"),
            address.get("indiceRepetition"),
            address.get("typeVoie"),
            address.get("voie") or address.get("libelleVoie"),
        ]
        street = _clean(" ".join(str(part) for part in parts if part))
        complement = _clean(address.get("complementLocalisation"))
        if street and complement:
            return f"{street}, {complement}"
        return street or complement

    def _record_from_payload(self, siren: str, payload: dict[str, Any]) -> CompanyRecord:
        content = _dig(payload, "formality", "content")
        if not isinstance(content, dict):
            content = {}
        record: CompanyRecord = CompanyRecord(
            siren=str(_dig(payload, "formality", "siren") or siren),
            source=_SOURCE,
        )

        personne_morale = content.get("personneMorale")
        personne_physique = content.get("personnePhysique")
        notes_parts: list[str] = []

        if isinstance(personne_morale, dict):
            name = _clean(_dig(personne_morale, "identite", "entreprise", "denomination"))
            address = _dig(personne_morale, "adresseEntreprise", "adresse") or {}
            rcs_city = _clean(_dig(personne_morale, "immatriculationRcs", "villeImmatriculation"))
        elif isinstance(personne_physique, dict):
            description = (
                _dig(personne_physique, "identite", "entrepreneur", "descriptionPersonne") or {}
            )
            prenoms = description.get("prenoms") or []
            if isinstance(prenoms, str):
                prenoms = [prenoms]
            name = _clean(" ".join([*prenoms, description.get("nom") or ""]))
            address = _dig(personne_physique, "adresseEntreprise", "adresse") or {}
            rcs_city = None
        else:
            LOGGER.warning("INPI : fiche sans personne morale ni physique pour %s", siren)
            record["notes"] = "no details"
            return record

        if not isinstance(address, dict):
            address = {}
        if name:
            record["legal_name"] = name
        legal_form = _clean(_dig(content, "natureCreation", "formeJuridique"))
        if legal_form:
            record["legal_form"] = legal_form

        street = self._format_street(address)
        if street:
            record["street"] = street
        zip_code = _clean(address.get("codePostal"))
        if zip_code:
            record["zip"] = zip_code
        city = _clean(address.get("commune"))
        if city:
            record["city"] = city
        record["country"] = _clean(address.get("pays")) or "FRANCE"

        greffe = lookup_greffe(zip_code)
        if greffe:
            notes_parts.append("greffe=code_postal")
        elif rcs_city:
            greffe = rcs_city
            notes_parts.append("greffe=immatriculation_rcs")
        else:
            notes_parts.append("greffe=inconnu")
        record["greffe"] = greffe

        updated_at = payload.get("updatedAt")
        if updated_at:
            notes_parts.append(f"updated_at={updated_at}")

        record["notes"] = ", ".join(notes_parts)
        return record

    def fetch(self, siren: str) -> CompanyRecord:
        normalised = validate_and_extract_siren(siren)
        if normalised is None:
            raise ValueError(f"SIREN ou SIRET invalide : {siren!r}")

        LOGGER.info("Récupération des données INPI pour le SIREN %s", normalised)
        if self._token is None:
            self.login()

        raw = self._call("GET", f"/api/companies/{normalised}")
        if raw is None:
            return CompanyRecord(siren=normalised, notes="api error", source=_SOURCE)
        if not raw:
            LOGGER.warning("INPI : aucune donnée pour le SIREN %s", normalised)
            return CompanyRecord(siren=normalised, notes="no result", source=_SOURCE)

        return self._record_from_payload(normalised, raw)
