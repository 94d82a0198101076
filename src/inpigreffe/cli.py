"""Command line entry point: compress the greffe index, look up codes, fetch companies."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Mapping, MutableMapping, Sequence
from pathlib import Path

import yaml
from dotenv import load_dotenv

from inpigreffe.greffes import compressor, storage
from inpigreffe.greffes.lookup import GreffeLookup, lookup, lookup_greffe
from inpigreffe.providers import INPIProvider
from inpigreffe.utils.logging_setup import setup_logger

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, str] = {
    "index_path": "",
    "base_url": "",
}

SAMPLE_POSTAL_CODES = ("75001", "13001", "69001", "10001", "00000")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Greffes INPI : index et recherche")
    parser.add_argument(
        "--config", help="Fichier YAML de configuration (index_path, base_url)"
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Journalisation détaillée"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compress_parser = subparsers.add_parser(
        "compress", help="Compresser greffes-index.json en plages + codes isolés"
    )
    compress_parser.add_argument(
        "--input", required=True, help="Index brut (code postal -> greffe)"
    )
    compress_parser.add_argument(
        "--output", required=True, help="Fichier de sortie de l'index compressé"
    )

    lookup_parser = subparsers.add_parser(
        "lookup", help="Trouver le greffe d'un code postal"
    )
    lookup_parser.add_argument("postal_code", help="Code postal à 5 chiffres")
    lookup_parser.add_argument("--index", help="Index compressé à utiliser")

    company_parser = subparsers.add_parser(
        "company", help="Interroger l'API INPI pour un SIREN ou SIRET"
    )
    company_parser.add_argument("siren", help="SIREN (9 chiffres) ou SIRET (14 chiffres)")
    company_parser.add_argument("--index", help="Index compressé à utiliser")

    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    if verbose:
        setup_logger(logging.DEBUG)


def _load_settings(path: str | None) -> dict[str, str]:
    settings: MutableMapping[str, str] = dict(DEFAULT_SETTINGS)
    if not path:
        return dict(settings)

    settings_path = Path(path)
    if not settings_path.exists():
        raise FileNotFoundError(f"Fichier de configuration introuvable : {settings_path}")

    data = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    if data is None:
        return dict(settings)
    if not isinstance(data, Mapping):
        raise ValueError("La configuration YAML doit contenir un dictionnaire")

    for key, value in data.items():
        str_key = str(key)
        if str_key not in DEFAULT_SETTINGS:
            logger.warning("Clé de configuration inconnue ignorée : %s", str_key)
            continue
        if value is None:
            continue
        settings[str_key] = str(value).strip()

    return dict(settings)


def _configure_index(index_arg: str | None, settings: Mapping[str, str]) -> None:
    index_path = index_arg or settings.get("index_path")
    if index_path:
        GreffeLookup.configure(index_path)


def _run_compress(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    output_path = Path(args.output)

    try:
        postal_codes = storage.load_postal_code_map(input_path)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 2

    logger.info(
        "Données d'origine : %s codes postaux (%.1f KB)",
        len(postal_codes),
        input_path.stat().st_size / 1024,
    )

    index = compressor.compress(postal_codes)
    logger.info(
        "Plages : %s, codes isolés : %s, taux de compression : %s%%",
        len(index["ranges"]),
        len(index["singles"]),
        index["metadata"]["compressionRatio"],
    )

    result = compressor.validate(postal_codes, index)
    if not result.valid:
        logger.error("Validation échouée, index non écrit :")
        for error in result.errors:
            logger.error("  - %s", error)
        return 1
    logger.info("Validation réussie : toutes les recherches correspondent")

    storage.write_compressed_index(index, output_path)

    original_size = input_path.stat().st_size
    new_size = output_path.stat().st_size
    reduction = (original_size - new_size) / original_size * 100 if original_size else 0.0
    logger.info(
        "Index écrit : %s (%.1f KB -> %.1f KB, %.1f%% de réduction)",
        output_path,
        original_size / 1024,
        new_size / 1024,
        reduction,
    )

    for code in SAMPLE_POSTAL_CODES:
        expected = postal_codes.get(code)
        status = "ok" if lookup(code, index) == expected else "ÉCART"
        logger.debug("Contrôle %s : %s (%s)", code, expected, status)

    return 0


def _run_lookup(args: argparse.Namespace, settings: Mapping[str, str]) -> int:
    _configure_index(args.index, settings)
    greffe = lookup_greffe(args.postal_code)
    if greffe is None:
        logger.info("Aucun greffe pour le code postal %s", args.postal_code)
        return 1
    print(greffe)
    return 0


def _run_company(args: argparse.Namespace, settings: Mapping[str, str]) -> int:
    _configure_index(args.index, settings)

    try:
        provider = INPIProvider(base_url=settings.get("base_url") or None)
    except RuntimeError as exc:
        logger.error("Configuration incomplète : %s", exc)
        return 2

    try:
        record = provider.fetch(args.siren)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2
    except RuntimeError as exc:
        logger.error("Abandon suite à une erreur API : %s", exc)
        return 2

    print(json.dumps(record, indent=2, sort_keys=True, ensure_ascii=False))

    notes = record.get("notes") or ""
    if "api error" in notes:
        logger.error("API INPI indisponible pour %s", args.siren)
        return 2
    if "no result" in notes:
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    dotenv_path = Path(".env")
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path)

    try:
        settings = _load_settings(args.config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 2

    if args.command == "compress":
        return _run_compress(args)
    if args.command == "lookup":
        return _run_lookup(args, settings)
    if args.command == "company":
        return _run_company(args, settings)

    logger.error("Commande inconnue : %s", args.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
