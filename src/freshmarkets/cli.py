import json, asyncio, dataclasses, logging
import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from .adapters.rpc_httpx import HttpxRPC
from .application.use_cases import scan_new_pairs
from .config import Settings
from .domain.chains import CHAIN_PROFILES, DEFAULT_BLOCKS_PER_MINUTE
from .domain.models import ScanRequest

console = Console()
err_console = Console(stderr=True)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # one line per request is enough
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group()
@click.option("--log-level", default="WARNING", show_default=True, envvar="FRESHMARKETS_LOG_LEVEL",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def cli(ctx, log_level):
    """freshmarkets: new AMM pairs in the last few minutes, with liquidity and holders."""
    _setup_logging(log_level)
    try:
        ctx.obj = Settings.from_env()
    except ValueError as e:
        raise click.UsageError(str(e))


@cli.command("scan-new-pairs")
@click.option("--chain", required=True, help="Target chain (ethereum, polygon, arbitrum, ...)")
@click.option("--factory", "factories", multiple=True, required=True, help="AMM factory address; repeat for several")
@click.option("--window-minutes", type=click.IntRange(min=1), required=True, help="Trailing window to scan")
@click.option("--rpc", default="", help="RPC endpoint URL (default: RPC_URL_<CHAIN>, RPC_URL, built-in)")
@click.option("--holder-strategy", type=click.Choice(["largest_transfer", "net_balance"]), default=None,
              help="Which holder approximation runs first")
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON response")
@click.pass_obj
def scan_new_pairs_cmd(settings: Settings, chain, factories, window_minutes, rpc, holder_strategy, as_json):
    """List AMM pairs created on CHAIN by FACTORY in the last WINDOW-MINUTES."""
    if holder_strategy:
        settings = dataclasses.replace(settings, holder_strategy=holder_strategy)
    rpc_url = rpc or settings.rpc_url(chain)
    request = ScanRequest(chain=chain, factories=tuple(factories), window_minutes=window_minutes)

    async def run():
        async with HttpxRPC(rpc_url, timeout_s=settings.rpc_timeout_s) as client:
            return await scan_new_pairs(client, request, settings=settings)

    with console.status(f"scanning {chain} via {rpc_url}", spinner="dots"):
        resp = asyncio.run(run())
    out = resp.to_dict()

    if as_json:
        click.echo(json.dumps(out, indent=2))
    elif resp.error is None:
        table = Table(title=f"{resp.count} new pairs • {chain} • last {window_minutes} min", expand=True)
        table.add_column("created_at", justify="right")
        table.add_column("pair")
        table.add_column("tokens")
        table.add_column("init liquidity", justify="right")
        table.add_column("top holders", justify="right")
        for p in resp.pairs:
            table.add_row(str(p.created_at), p.pair_address, "\n".join(p.tokens),
                          p.init_liquidity, str(len(p.top_holders)))
        console.print(table)
    if resp.error is not None:
        raise click.ClickException(resp.error)


@cli.command("chains")
@click.pass_obj
def chains_cmd(settings: Settings):
    """Show known chain profiles and the RPC endpoint each would use."""
    table = Table(expand=False)
    table.add_column("chain"); table.add_column("chain id", justify="right")
    table.add_column("blocks/min", justify="right"); table.add_column("rpc")
    for p in CHAIN_PROFILES:
        table.add_row(p.name, str(p.chain_id), str(p.blocks_per_minute), settings.rpc_url(p.name))
    console.print(table)
    console.print(f"[dim]unknown chains: {DEFAULT_BLOCKS_PER_MINUTE} blocks/min[/]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
