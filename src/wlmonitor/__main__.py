"""Entry point for wlmonitor."""

import asyncio
import logging
import sys

from wlmonitor.config import ConfigError, WidgetConfig, load_config


def run_fetch_test(config):
    """Fetch and print live departures for all configured widgets."""
    from wlmonitor.api import UpstreamError, WienerLinienClient
    from wlmonitor.selector import raw_departure_limit

    client = WienerLinienClient(
        base_url=config.api.base_url,
        timeout=config.api.timeout_seconds,
    )
    for settings in config.widgets:
        widget = WidgetConfig.from_settings(settings)
        try:
            stop_id = widget.stop_id()
        except ConfigError as exc:
            print(f"\n=== {settings['id']}: {exc} ===")
            continue
        print(f"\n=== {settings['id']} (RBL {stop_id}) ===\n")

        try:
            departures = client.fetch_departures(
                stop_id, raw_departure_limit(widget.show_two_departures)
            )
        except UpstreamError as exc:
            print(f"  Error: {exc}")
            continue
        if not departures:
            print("  No departures")
            continue

        for dep in departures:
            access = "barrier-free" if dep.barrier_free else ""
            print(
                f"  {dep.line:<5}| {dep.towards:<25}| {dep.platform:<4}| "
                f"{dep.countdown:>3} min | {dep.vehicle_type:<10} {access}"
            )


def run_render_test(config):
    """Render every tile state to assets/."""
    from wlmonitor.renderer import run_render_test as _run_render_test

    for path in _run_render_test(config):
        print(f"Rendered test output to: {path}")


def run_app(config):
    """Run the desktop deck application."""
    from wlmonitor.app import DeckApp

    app = DeckApp(config)
    asyncio.run(app.run())


def main():
    """CLI entry point for the wlmonitor application.

    Loads configuration (defaults -> YAML -> CLI args), sets up logging
    to stderr, then dispatches to one of three modes based on CLI flags:
      --fetch-test:  print live departures to stdout and exit
      --render-test: save sample tile renders to assets/ and exit
      (default):     run the deck window with all configured widgets
    """
    config = load_config()

    # Log to stderr so stdout is clean for --fetch-test output.
    level = logging.DEBUG if config.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    logger = logging.getLogger(__name__)
    logger.debug("Config loaded: %d widget(s), debug=%s", len(config.widgets), config.debug)

    try:
        if config.fetch_test:
            logger.info("Running fetch test")
            run_fetch_test(config)
        elif config.render_test:
            logger.info("Running render test")
            run_render_test(config)
        else:
            logger.info("Starting deck application")
            run_app(config)
    except KeyboardInterrupt:
        print("\nShutting down.")
        sys.exit(0)
    except Exception as e:
        logger.error("Unexpected error: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
