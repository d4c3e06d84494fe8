"""
MaskBid CLI - Command Line Interface for the settlement pipeline

Main entry point for all CLI commands.
"""

import json
import click
from pathlib import Path

from maskbid.utils.logger import setup_logging, get_logger


def _fail(error) -> None:
    """Print a MaskBid error with its tag and exit non-zero."""
    raise click.ClickException(f"[{error.tag}] {error.message}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help=".env file to load")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, env_file):
    """MaskBid - Sealed-bid auction settlement"""
    import logging
    from maskbid.core.config import load_config
    from maskbid.core.errors import MisconfiguredError

    try:
        config = load_config(env_file)
    except MisconfiguredError as e:
        _fail(e)

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level, log_dir=str(config.log_dir) if config.log_dir else None)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Keys and Bids
# =============================================================================


@cli.command("keygen")
@click.option("--out-dir", default=".", type=click.Path(file_okay=False), help="Where to write the PEM files")
@click.option("--bits", default=2048, help="RSA modulus size")
def keygen(out_dir, bits):
    """Generate the solver's RSA keypair"""
    from maskbid.crypto import generate_rsa_keypair

    out = Path(out_dir).expanduser()
    out.mkdir(parents=True, exist_ok=True)
    pair = generate_rsa_keypair(bits)

    private_path = out / "solver_private.pem"
    public_path = out / "solver_public.pem"
    private_path.write_text(pair.private_pem)
    private_path.chmod(0o600)
    public_path.write_text(pair.public_pem)

    click.echo(f"✓ Keypair generated ({bits} bits)")
    click.echo(f"  Private key: {private_path}")
    click.echo(f"  Public key:  {public_path}")
    click.echo("  Set RSA_PRIVATE_KEY_FILE to the private key path for the solver.")


@cli.command("seal-bid")
@click.option("--amount", required=True, help="Bid amount in currency units, e.g. 1500.25")
@click.option("--bidder", required=True, help="Bidder address")
@click.option("--public-key", required=True, type=click.Path(exists=True, dir_okay=False), help="Solver public key PEM")
@click.option("--auction-ref", default=None, help="On-chain auction id, to also print the commitment")
def seal_bid_cmd(amount, bidder, public_key, auction_ref):
    """Encrypt a bid for the solver"""
    from maskbid.core.amounts import to_minor_units
    from maskbid.crypto import compute_commitment, normalize_address, seal_bid

    try:
        to_minor_units(amount)
        bidder = normalize_address(bidder)
    except ValueError as e:
        raise click.BadParameter(str(e))

    ciphertext = seal_bid(amount, bidder, Path(public_key).read_text())
    output = {"bidderAddress": bidder, "encryptedData": ciphertext}
    if auction_ref is not None:
        output["bidHash"] = compute_commitment(auction_ref, bidder, ciphertext)
    click.echo(json.dumps(output, indent=2))


# =============================================================================
# Logs and Reports
# =============================================================================


@cli.command("decode-log")
@click.option("--contract", type=click.Choice(["asset", "auction"]), required=True, help="Emitting contract")
@click.option("--topic", "topics", multiple=True, required=True, help="Topic hex (repeat, topic0 first)")
@click.option("--data", default="0x", help="Log data hex")
@click.option("--tx-hash", default=None, help="Transaction hash")
@click.option("--log-index", default=None, type=int, help="Log index within the transaction")
def decode_log_cmd(contract, topics, data, tx_hash, log_index):
    """Decode a raw contract log into its relay payload"""
    from maskbid.core.errors import DecodeError
    from maskbid.core.events import RawLog, decode_asset_log, decode_auction_log, event_to_payload

    try:
        log = RawLog.from_hex(list(topics), data, transaction_hash=tx_hash, log_index=log_index)
        decode = decode_asset_log if contract == "asset" else decode_auction_log
        event = decode(log)
    except DecodeError as e:
        _fail(e)

    click.echo(json.dumps(event_to_payload(event), indent=2))


@cli.command("encode-report")
@click.argument("auction_id", type=int)
@click.argument("winner")
@click.argument("amount")
@click.option("--units", is_flag=True, help="AMOUNT is already in minor units")
@click.pass_context
def encode_report_cmd(ctx, auction_id, winner, amount, units):
    """Encode a resolution report (AUCTION_ID WINNER AMOUNT)"""
    from maskbid.core.amounts import to_minor_units
    from maskbid.core.sync import ResolutionReport

    decimals = ctx.obj["config"].currency_decimals
    try:
        winning_amount = int(amount) if units else to_minor_units(amount, decimals)
        report = ResolutionReport(auction_id, winner.lower(), winning_amount)
        click.echo(report.to_hex())
    except ValueError as e:
        raise click.BadParameter(str(e))


@cli.command("decode-report")
@click.argument("report_hex")
@click.pass_context
def decode_report_cmd(ctx, report_hex):
    """Decode a 96-byte resolution report"""
    from maskbid.core.amounts import format_minor_units
    from maskbid.core.errors import MalformedLogError
    from maskbid.core.sync import decode_report

    try:
        report = decode_report(report_hex)
    except MalformedLogError as e:
        _fail(e)

    decimals = ctx.obj["config"].currency_decimals
    click.echo(f"Auction ID: {report.auction_id}")
    click.echo(f"Winner:     {report.winner}")
    click.echo(f"Amount:     {format_minor_units(report.winning_amount, decimals)} ({report.winning_amount} units)")


# =============================================================================
# Service Commands
# =============================================================================


@cli.command("serve")
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, help="Port")
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API"""
    import uvicorn
    from maskbid.api import create_app
    from maskbid.core.errors import MaskBidError

    logger = get_logger("cli")
    try:
        app = create_app(ctx.obj["config"])
    except MaskBidError as e:
        _fail(e)

    logger.info(f"Serving MaskBid API on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


@cli.command("resolve")
@click.argument("auction_id")
@click.option("--contract-auction-id", default=None, type=int, help="On-chain auction id override")
@click.pass_context
def resolve(ctx, auction_id, contract_auction_id):
    """Resolve an auction against the configured store"""
    from maskbid.core.errors import MaskBidError
    from maskbid.core.solver import BidResolver, build_decryptor
    from maskbid.core.storage import open_store

    config = ctx.obj["config"]
    payload = {"auctionId": auction_id, "action": "resolve"}
    if contract_auction_id is not None:
        payload["contractAuctionId"] = contract_auction_id

    store = None
    try:
        store = open_store(config)
        resolver = BidResolver(config, store, build_decryptor(config))
        token = config.require_solver_token()
        result = resolver.resolve(payload, f"Bearer {token}")
    except MaskBidError as e:
        _fail(e)
    finally:
        if store is not None:
            store.close()

    click.echo(json.dumps(result.to_response(config.currency_decimals), indent=2))


if __name__ == "__main__":
    cli()
