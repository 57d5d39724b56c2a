"""CLI entry point."""

from __future__ import annotations

import asyncio
import sys


def main() -> None:
    """Main entry point for the CLI."""
    cli = build_cli()
    cli()


def build_cli():
    """CLI definition."""
    import rich_click as click

    # Configure rich-click styling
    click.rich_click.USE_RICH_MARKUP = True
    click.rich_click.USE_MARKDOWN = True
    click.rich_click.SHOW_ARGUMENTS = True
    click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
    click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
    click.rich_click.MAX_WIDTH = 100

    @click.group()
    @click.version_option(package_name="llmux")
    def cli():
        """llmux - One chat-completion endpoint for Anthropic, OpenAI and Google.

        Prefix the model with its provider (`anthropic/`, `openai/`,
        `google/`); unprefixed models go to OpenAI.

            llmux serve      Run the gateway

            llmux resolve    Show where a model name is routed
        """
        pass

    @cli.command()
    @click.option("--host", default=None, help="Host to bind (or LLMUX_HOST)")
    @click.option("--port", default=None, type=int, help="Port to bind (or LLMUX_PORT)")
    @click.option(
        "--config",
        "config_file",
        default=None,
        type=click.Path(dir_okay=False),
        help="YAML config file (or LLMUX_CONFIG)",
    )
    @click.option("--debug-dir", default=None, help="Save per-request debug dumps here")
    @click.option("--env-file", default=".env", show_default=True, help="dotenv file to load")
    @click.option("--log-level", default=None, help="Log level (or LLMUX_LOG_LEVEL)")
    @click.option(
        "--log-format",
        default=None,
        type=click.Choice(["text", "json"]),
        help="Log format (or LLMUX_LOG_FORMAT)",
    )
    def serve(
        host: str | None,
        port: int | None,
        config_file: str | None,
        debug_dir: str | None,
        env_file: str,
        log_level: str | None,
        log_format: str | None,
    ) -> None:
        """Run the gateway until interrupted or POST /api/shutdown.

        Provider keys come from `ANTHROPIC_API_KEY`, `OPENAI_API_KEY` and
        `GOOGLE_API_KEY`; a provider without a key answers 401.

        **Examples:**

            llmux serve

            llmux serve --port 8000 --debug-dir /tmp/llmux-debug
        """
        from dotenv import load_dotenv

        from llmux.compose import run_gateway
        from llmux.core.logging_config import configure_logging

        load_dotenv(env_file)
        try:
            configure_logging(level=log_level, format=log_format)  # type: ignore[arg-type]
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        try:
            asyncio.run(
                run_gateway(
                    config_file=config_file,
                    host=host,
                    port=port,
                    debug_dir=debug_dir,
                )
            )
        except KeyboardInterrupt:
            click.echo("\nStopped.")
        except (OSError, ValueError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    @cli.command()
    @click.argument("model")
    def resolve(model: str) -> None:
        """Print the provider and upstream model id for MODEL.

        **Examples:**

            llmux resolve anthropic/claude-3-5-sonnet-20241022

            llmux resolve gpt-4o
        """
        from llmux.gateway.transforms.resolver import provider_model_id, resolve_provider

        click.echo(f"{resolve_provider(model).value}\t{provider_model_id(model)}")

    return cli


if __name__ == "__main__":
    main()
