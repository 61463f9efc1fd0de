"""
Command-line interface for protomint.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Annotated

import typer
from loguru import logger
from pydantic import ValidationError

from protomint.address import classify_address, network_for_address
from protomint.broadcast import BroadcastDispatcher
from protomint.config import Settings, get_settings
from protomint.errors import ProtomintError
from protomint.gateway import UTXOGateway
from protomint.models import NetworkType, ProtocolMessage, ServiceFee, TokenId
from protomint.payload import ENCODERS, get_encoder
from protomint.pipeline import MintPipeline
from protomint.server import run_server

app = typer.Typer(
    name="protomint",
    help="Alkanes mint transaction builder and broadcaster",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_settings(**overrides: object) -> Settings:
    try:
        settings = get_settings()
    except (ValidationError, ValueError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(1) from e
    updates = {k: v for k, v in overrides.items() if v is not None}
    return settings.model_copy(update=updates) if updates else settings


def _message(block: int, tx: int, opcode: int, extra: list[int] | None) -> ProtocolMessage:
    try:
        return ProtocolMessage(
            token_id=TokenId(block=block, tx=tx), opcode=opcode, extra_fields=extra or []
        )
    except ValidationError as e:
        typer.echo(f"Invalid protocol message: {e}", err=True)
        raise typer.Exit(1) from e


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
    log_level: Annotated[str | None, typer.Option("--log-level", "-l")] = None,
) -> None:
    """Run the HTTP API."""
    settings = _load_settings(http_host=host, http_port=port, log_level=log_level)
    setup_logging(settings.log_level)

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        raise typer.Exit(1) from e


@app.command()
def payload(
    block: Annotated[int, typer.Argument(help="Token id block")],
    tx: Annotated[int, typer.Argument(help="Token id tx")],
    opcode: Annotated[int, typer.Option("--opcode", "-o", help="Contract opcode")] = 77,
    extra: Annotated[
        list[int] | None, typer.Option("--extra", "-e", help="Extra calldata value")
    ] = None,
) -> None:
    """Print the OP_RETURN script from every payload encoder."""
    setup_logging("WARNING")
    message = _message(block, tx, opcode, extra)

    scripts = {}
    for name in ENCODERS:
        try:
            scripts[name] = get_encoder(name).build_script(message).hex()
        except ProtomintError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from e
        typer.echo(f"{name:<10} {scripts[name]}")

    if len(set(scripts.values())) != 1:
        typer.echo("Encoders disagree", err=True)
        raise typer.Exit(1)


@app.command()
def classify(address: Annotated[str, typer.Argument(help="Address to classify")]) -> None:
    """Print the classification of an address as JSON."""
    info = classify_address(address)
    typer.echo(json.dumps(info.model_dump(mode="json"), indent=2))
    if not info.valid:
        raise typer.Exit(1)


@app.command()
def preview(
    address: Annotated[str, typer.Argument(help="Spending address")],
    block: Annotated[int, typer.Option("--block", help="Token id block")] = 2,
    tx: Annotated[int, typer.Option("--tx", help="Token id tx")] = 0,
    opcode: Annotated[int, typer.Option("--opcode", "-o", help="Contract opcode")] = 77,
    output_address: Annotated[
        str | None, typer.Option("--output-address", help="Recipient of the minted token")
    ] = None,
    fee_rate: Annotated[float | None, typer.Option("--fee-rate", help="sat/vbyte")] = None,
    service_fee_address: Annotated[str | None, typer.Option("--service-fee-address")] = None,
    service_fee_sats: Annotated[int | None, typer.Option("--service-fee-sats")] = None,
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "WARNING",
) -> None:
    """Build an input-less template PSBT without contacting any provider."""
    setup_logging(log_level)
    settings = _load_settings()
    message = _message(block, tx, opcode, None)

    service_fee = None
    if service_fee_address and service_fee_sats:
        service_fee = ServiceFee(address=service_fee_address, amount_sats=service_fee_sats)

    pipeline = MintPipeline(settings, UTXOGateway([]), BroadcastDispatcher(settings, []))
    try:
        assembled = pipeline.preview(address, message, output_address, fee_rate, service_fee)
    except ProtomintError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    network = network_for_address(address, NetworkType(settings.network))
    typer.echo(json.dumps(assembled.psbt.summary(network), indent=2))
    typer.echo(f"\nPSBT (base64):\n{assembled.base64}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
