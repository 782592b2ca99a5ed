# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/cli/commands/transfer.py

"""Transfer command: ship databases, media directories and pending items."""

from enum import Enum
from typing import Any, Dict, Optional

import humanize
import typer

from vaultsync.cli.common import EXIT_ERROR, cli_errors, echo_json, open_environment
from vaultsync.service.transfer.queue import ReplicationQueue


class TransferType(str, Enum):
    """What to transfer."""
    DATABASE = "database"
    IMAGES = "images"
    DOCUMENTS = "documents"
    ALL = "all"
    PENDING_IMAGES = "pending-images"
    PENDING_DOCUMENTS = "pending-documents"
    PENDING_ALL = "pending-all"
    SINGLE_IMAGE = "single-image"
    SINGLE_DOCUMENT = "single-document"
    LIST_PENDING_IMAGES = "list-pending-images"
    LIST_PENDING_DOCUMENTS = "list-pending-documents"


def run_transfer(queue: ReplicationQueue, transfer_type: TransferType, item_id: Optional[int]) -> Dict[str, Any]:
    """Dispatch one transfer type; returns results keyed by what was transferred."""
    if transfer_type in (TransferType.SINGLE_IMAGE, TransferType.SINGLE_DOCUMENT) and item_id is None:
        raise typer.BadParameter("--id is required for single transfers")

    if transfer_type == TransferType.DATABASE:
        return {"database": queue.transfer_database()}
    if transfer_type == TransferType.IMAGES:
        return {"images": queue.transfer_directory("images")}
    if transfer_type == TransferType.DOCUMENTS:
        return {"documents": queue.transfer_directory("documents")}
    if transfer_type == TransferType.ALL:
        return queue.transfer_all()
    if transfer_type == TransferType.PENDING_IMAGES:
        return {"pending_images": queue.transfer_pending_images().model_dump()}
    if transfer_type == TransferType.PENDING_DOCUMENTS:
        return {"pending_documents": queue.transfer_pending_documents().model_dump()}
    if transfer_type == TransferType.PENDING_ALL:
        return {
            "pending_images": queue.transfer_pending_images().model_dump(),
            "pending_documents": queue.transfer_pending_documents().model_dump(),
        }
    if transfer_type == TransferType.SINGLE_IMAGE:
        return {"single_image": queue.transfer_single_image(item_id).model_dump()}
    if transfer_type == TransferType.SINGLE_DOCUMENT:
        return {"single_document": queue.transfer_single_document(item_id).model_dump()}
    if transfer_type == TransferType.LIST_PENDING_IMAGES:
        return {"pending_images": queue.get_pending_images()}
    return {"pending_documents": queue.get_pending_documents()}


def _failed(results: Dict[str, Any]) -> bool:
    for result in results.values():
        if not isinstance(result, dict):
            continue
        if result.get("success") is False and not result.get("skipped"):
            return True
        if result.get("failed"):
            return True
    return False


def main(
    ctx: typer.Context,
    transfer_type: TransferType = typer.Option(TransferType.ALL, "--type", "-t", help="What to transfer"),
    item_id: Optional[int] = typer.Option(None, "--id", help="Item id for single transfers"),
):
    """Transfer databases, directories or pending items."""
    with cli_errors(), open_environment(ctx) as environment:
        results = run_transfer(environment.replication_queue(), transfer_type, item_id)

    echo_json(results)
    for name, result in results.items():
        if not isinstance(result, dict):
            continue
        size = result.get("size", result.get("total_size"))
        if size:
            typer.echo(f"{name}: {humanize.naturalsize(size)} in {result.get('duration', 0)}s")

    if _failed(results):
        raise typer.Exit(code=EXIT_ERROR)
