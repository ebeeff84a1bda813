"""Entry point that attaches an Outlook e-mail and its attachments to a zaak."""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
import sys

from dotenv import load_dotenv

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from outlook_to_zaak.auth_providers import build_providers
from outlook_to_zaak.backoff import BackoffExecutor
from outlook_to_zaak.case_client import CaseClient
from outlook_to_zaak.config import Settings
from outlook_to_zaak.content import GraphContentFetcher
from outlook_to_zaak.credentials import CredentialCache
from outlook_to_zaak.graph_client import GraphClient
from outlook_to_zaak.models import DocumentMetadata, ItemKind, RunResult, UploadItem
from outlook_to_zaak.orchestrator import UploadOrchestrator
from outlook_to_zaak.translator import IdentifierTranslator

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Attach an Outlook e-mail and its attachments to a zaak.")
    parser.add_argument("--case", required=True, help="Zaak identificatie to attach documents to")
    parser.add_argument("--message", required=True, help="Outlook (EWS) id of the e-mail")
    parser.add_argument("--subject", default="", help="Subject used to name the e-mail document")
    parser.add_argument(
        "--attachment",
        action="append",
        default=[],
        metavar="ID[=NAME]",
        help="Outlook attachment id, optionally followed by '=file name'; repeatable",
    )
    parser.add_argument("--skip-email", action="store_true", help="Only upload the attachments")
    parser.add_argument("--title", default="", help="Document title (defaults to the file name)")
    parser.add_argument("--document-type", default="", help="informatieobjecttype URL")
    parser.add_argument("--confidentiality", default="openbaar", help="vertrouwelijkheidaanduiding")
    parser.add_argument("--status", default="", help="Document status")
    parser.add_argument("--author", default="", help="Document author")
    parser.add_argument("--created", type=parse_datetime, help="ISO8601 creation timestamp")
    parser.add_argument("--dry-run", action="store_true", help="List actions without uploading")
    return parser


def parse_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid ISO timestamp: {value}") from exc


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_items(args: argparse.Namespace) -> list[UploadItem]:
    def metadata() -> DocumentMetadata:
        return DocumentMetadata(
            case_id=args.case,
            title=args.title,
            confidentiality=args.confidentiality,
            document_type=args.document_type,
            status=args.status,
            created=args.created,
            author=args.author,
        )

    items: list[UploadItem] = []
    if not args.skip_email:
        items.append(
            UploadItem(
                local_id=args.message,
                kind=ItemKind.EMAIL,
                metadata=metadata(),
                name=f"E-mail: {args.subject or '(geen onderwerp)'}.eml",
                content_type="message/rfc822",
            )
        )
    for raw in args.attachment:
        attachment_id, _, name = raw.partition("=")
        items.append(
            UploadItem(
                local_id=attachment_id,
                kind=ItemKind.ATTACHMENT,
                metadata=metadata(),
                name=name or attachment_id,
                parent_local_id=args.message,
            )
        )
    return items


async def run_upload(settings: Settings, items: list[UploadItem]) -> tuple[RunResult, UploadOrchestrator]:
    primary, secondary = build_providers(settings)
    credentials = CredentialCache(
        primary,
        scopes=settings.graph_scopes,
        secondary=secondary,
        safety_margin=settings.token_safety_margin,
        default_lifetime=settings.token_default_lifetime,
    )
    executor = BackoffExecutor(
        max_retries=settings.retry_max_retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
    )
    async with GraphClient(credentials, timeout=settings.http_timeout_seconds) as graph, CaseClient(
        settings.zaak_api_url, credentials, timeout=settings.http_timeout_seconds
    ) as cases:
        orchestrator = UploadOrchestrator(
            credentials=credentials,
            translator=IdentifierTranslator(graph),
            fetcher=GraphContentFetcher(graph),
            submitter=cases,
            executor=executor,
        )
        result = await orchestrator.run(items)
    return result, orchestrator


def report(items: list[UploadItem], orchestrator: UploadOrchestrator) -> None:
    for item in items:
        record = orchestrator.registry.get(item.local_id)
        status = record.status.value if record else "skipped"
        detail = f" ({record.error})" if record and record.error else ""
        logging.info("%s %s: %s%s", item.kind.value, item.name, status, detail)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)
    items = build_items(args)

    if args.dry_run:
        for item in items:
            logging.info("[DRY-RUN] Would upload %s '%s' to zaak %s", item.kind.value, item.name, args.case)
        return

    result, orchestrator = asyncio.run(run_upload(settings, items))
    report(items, orchestrator)

    if result.error is not None:
        logging.error("Run failed: %s", result.error)
        raise SystemExit(1)
    summary = result.summary
    logging.info(
        "Run complete: email=%s attachments=%s",
        summary.uploaded_email,
        summary.uploaded_attachment_count,
    )


if __name__ == "__main__":
    main()
