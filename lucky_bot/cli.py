"""
CLI entry point for the Lucky bot.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import structlog
import typer

from . import __version__
from .checks import CheckFailedError, check_grants, check_raffle_consumer_configuration, report
from .config import ConfigurationError, LuckyConfig, Network
from .evm import EVMClient, EVMConfig
from .indexer import IndexerClient
from .phat import PhatContractClient
from .reconciler import ClaimReconciler, EraActionError, RaffleReconciler

logger = structlog.get_logger()

app = typer.Typer(
    name="lucky-bot",
    help="Claim dApp staking rewards and run the Lucky raffle",
    add_completion=False,
)


def configure_logging(debug: bool = False) -> None:
    """Configure structlog, debug mode displays more information."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lucky-bot v{__version__}")
        raise typer.Exit()


def validate(
    config: LuckyConfig,
    display_information: bool,
    checks: bool,
    claim: bool,
    raffle: bool,
) -> None:
    """Fail before any network call if an action misses its configuration."""
    required: list[str] = []
    if display_information:
        required += ["indexer_url", "dapp_address", "raffle_consumer_address"]
    if checks:
        required += ["raffle_consumer_address", "reward_manager_address", "attestor_address", "private_key"]
    if claim:
        required += ["indexer_url", "dapp_address", "private_key"]
    if raffle:
        required += ["raffle_consumer_address", "phat_endpoint", "phat_contract_id"]
    config.require(*dict.fromkeys(required))


def create_evm_client(config: LuckyConfig) -> EVMClient:
    """Create EVM client from the configuration."""
    settings = config.settings
    return EVMClient(
        EVMConfig(
            rpc_url=config.rpc_url,
            chain_id=config.chain_id,
            private_key=settings.private_key,
            gas_limit=settings.gas_limit,
            receipt_timeout=settings.tx_receipt_timeout_seconds,
        )
    )


def create_indexer_client(config: LuckyConfig) -> IndexerClient:
    settings = config.settings
    return IndexerClient(
        settings.indexer_url,
        config.indexer_dapp_id,
        timeout=settings.http_timeout_seconds,
    )


async def display_information(config: LuckyConfig, evm: EVMClient) -> None:
    """Display information from indexer and smart contracts."""
    indexer = create_indexer_client(config)

    current_era = await evm.get_current_era()
    last_era = await indexer.get_last_era_received_reward()
    next_raffle_era = await evm.get_next_era_in_raffle_consumer(
        config.settings.raffle_consumer_address
    )

    typer.echo(f"Current era:                 {current_era}")
    typer.echo(f"Last era received reward:    {last_era}")
    typer.echo(f"Next era in raffle consumer: {next_raffle_era}")


async def run_checks(config: LuckyConfig, evm: EVMClient) -> None:
    """Check the grants and the raffle consumer configuration."""
    settings = config.settings
    results = await check_grants(
        evm,
        settings.raffle_consumer_address,
        settings.reward_manager_address,
        settings.attestor_address,
    )
    results += await check_raffle_consumer_configuration(
        evm,
        settings.raffle_consumer_address,
        evm.address,
        settings.reward_manager_address,
    )
    report(results)
    typer.echo(f"All {len(results)} checks passed")


async def claim_all_eras(config: LuckyConfig, evm: EVMClient) -> None:
    settings = config.settings
    reconciler = ClaimReconciler(
        create_indexer_client(config),
        evm,
        settings.dapp_address,
        settings.dapp_type,
    )
    processed = await reconciler.run()
    typer.echo(f"Processed {processed} eras")


async def run_raffle(config: LuckyConfig, evm: EVMClient) -> None:
    settings = config.settings
    phat = PhatContractClient(
        settings.phat_endpoint,
        settings.phat_contract_id,
        timeout=settings.http_timeout_seconds,
    )
    reconciler = RaffleReconciler(
        evm,
        phat,
        settings.raffle_consumer_address,
        poll_interval=settings.raffle_poll_interval_seconds,
    )
    summary = await reconciler.run()
    typer.echo(f"Raffle attempts: {summary.attempts}, failures: {summary.failures}")


async def _run(
    config: LuckyConfig,
    display_info: bool,
    checks: bool,
    claim: bool,
    raffle: bool,
) -> None:
    evm = create_evm_client(config)

    if display_info:
        await display_information(config, evm)

    if checks:
        await run_checks(config, evm)

    if claim:
        await claim_all_eras(config, evm)

    if raffle:
        await run_raffle(config, evm)


@app.command()
def run(
    display_configuration: bool = typer.Option(
        False,
        "--display-configuration",
        "--dc",
        help="Display the configuration (contract and http addresses)",
    ),
    display_info: bool = typer.Option(
        False,
        "--display-information",
        "--di",
        help="Display information from indexer and smart contracts",
    ),
    checks: bool = typer.Option(
        False,
        "--checks",
        "--ch",
        help="Check if the grants and the configuration in the smart contracts have been set",
    ),
    claim: bool = typer.Option(
        False,
        "--claim",
        "--cl",
        help="Claim dApp staking developer rewards (for all missing eras)",
    ),
    raffle: bool = typer.Option(
        False,
        "--raffle",
        "-r",
        help="Start the raffle for all missing eras",
    ),
    network: Optional[Network] = typer.Option(
        None,
        "--network",
        "--net",
        help="Specify the network",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Debug mode: display more information",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--env-file",
        "-c",
        help="Path to .env configuration file",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """
    Claim the dApp staking rewards and run the raffle for all missing eras.

    Example:
        lucky-bot --net shibuya --claim --raffle
    """
    configure_logging(debug)

    try:
        if not (display_configuration or display_info or checks or claim or raffle):
            raise ConfigurationError("At least one option is required. Use --help for more information")
        if network is None:
            raise ConfigurationError("The network is mandatory")

        config = LuckyConfig.from_env(network.value, config_path)
        validate(config, display_info, checks, claim, raffle)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if display_configuration:
        for label, value in config.describe():
            typer.echo(f"{label + ':':<17}{value}")

    if not (display_info or checks or claim or raffle):
        return

    try:
        asyncio.run(_run(config, display_info, checks, claim, raffle))
    except (CheckFailedError, EraActionError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        typer.echo("\nStopping lucky-bot...")
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("unrecovered_error", error=str(e))
        raise typer.Exit(1)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
