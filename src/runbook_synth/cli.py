"""
Command-line interface for runbook-synth

Provides CLI commands for:
- Ingesting runbooks: runbook-synth ingest --bucket runbooks
- Processing alerts: runbook-synth process --alert-file alert.json --dispatch
- Managing configuration: runbook-synth config --show
"""

import asyncio
import json
import sys
from typing import Any, Optional

import click
import yaml

from . import __version__
from .config import SynthConfig, get_config, set_config
from .models import Alert
from .observability import initialize_observability
from .services import Services, build_services


async def run_ingest(services: Services, bucket: str, path: Optional[str] = None) -> int:
    if path:
        return await services.ingestion.ingest(bucket, path)
    return await services.ingestion.ingest_all(bucket)


async def run_process(
    services: Services,
    alert_data: dict[str, Any],
    bucket: str,
    top_k: Optional[int] = None,
    dispatch: bool = False,
) -> dict[str, Any]:
    """Ingest the bucket, process one alert and optionally dispatch it"""
    alert = Alert.model_validate(alert_data)
    chunk_count = 0
    if services.config.runbooks.ingest_on_startup:
        chunk_count = await services.ingestion.ingest_all(bucket)
    checklist = await services.pipeline.process_alert(alert, top_k)

    output: dict[str, Any] = {
        "chunksIngested": chunk_count,
        "checklist": checklist.to_dict(),
    }
    if dispatch:
        results = await services.dispatcher.dispatch(checklist)
        output["deliveries"] = [result.model_dump(mode="json") for result in results]
    return output


@click.group()
@click.version_option(version=__version__, prog_name="runbook-synth")
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML configuration file (default: runbook-synth.yml)",
)
def cli(config_file: Optional[str]):
    """runbook-synth - alert-driven troubleshooting checklists"""
    if config_file:
        set_config(SynthConfig.load_from_file(config_file))
    initialize_observability(get_config().telemetry)


@cli.command()
@click.option("--bucket", default=None, help="Runbook bucket (default: runbooks.bucket)")
@click.option("--path", default=None, help="Ingest a single runbook instead of the whole bucket")
def ingest(bucket: Optional[str], path: Optional[str]):
    """Chunk, embed and index runbooks"""
    try:
        config_obj = get_config()
        bucket = bucket or config_obj.runbooks.bucket
        services = build_services(config_obj)

        count = asyncio.run(run_ingest(services, bucket, path))

        target = f"{bucket}/{path}" if path else bucket
        click.echo(f"📚 Ingested {count} chunk(s) from {target}")

    except Exception as e:
        click.echo(f"❌ Ingestion failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--alert-file",
    type=click.Path(exists=True),
    required=True,
    help="JSON file containing the alert",
)
@click.option("--top-k", type=click.IntRange(min=0), default=None, help="Runbook chunks to use")
@click.option("--bucket", default=None, help="Runbook bucket (default: runbooks.bucket)")
@click.option("--dispatch", is_flag=True, help="Deliver the checklist to configured webhooks")
def process(alert_file: str, top_k: Optional[int], bucket: Optional[str], dispatch: bool):
    """Generate a troubleshooting checklist for an alert"""
    try:
        with open(alert_file, encoding="utf-8") as f:
            alert_data = json.load(f)

        config_obj = get_config()
        services = build_services(config_obj)
        result = asyncio.run(
            run_process(
                services,
                alert_data,
                bucket or config_obj.runbooks.bucket,
                top_k=top_k,
                dispatch=dispatch,
            )
        )

        click.echo(json.dumps(result["checklist"], indent=2))

        for delivery in result.get("deliveries", []):
            if delivery["success"]:
                click.echo(
                    f"✅ {delivery['destination_name']}: HTTP {delivery['status_code']} "
                    f"after {delivery['attempts']} attempt(s)",
                    err=True,
                )
            else:
                click.echo(
                    f"❌ {delivery['destination_name']}: {delivery['error_message']}",
                    err=True,
                )

    except Exception as e:
        click.echo(f"❌ Alert processing failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--format", type=click.Choice(["yaml", "json"]), default="yaml", help="Output format")
def config(show: bool, format: str):
    """Manage runbook-synth configuration"""
    if show:
        try:
            config_obj = get_config()
            config_dict = config_obj.model_dump(mode="json")

            if format == "yaml":
                click.echo(yaml.safe_dump(config_dict, default_flow_style=False, indent=2))
            elif format == "json":
                click.echo(json.dumps(config_dict, indent=2))

        except Exception as e:
            click.echo(f"❌ Failed to load configuration: {e}", err=True)
            sys.exit(1)
    else:
        click.echo("Use --show to display current configuration")
        click.echo("Available options:")
        click.echo("  --show          Show current configuration")
        click.echo("  --format yaml   Output in YAML format (default)")
        click.echo("  --format json   Output in JSON format")


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == "__main__":
    main()
