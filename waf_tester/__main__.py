"""Command line entry point for waf_tester.

Usage:
    python -m waf_tester run --target-url https://example.com --requests 100 --duration 10
    python -m waf_tester run --target-url https://example.com/api --requests 50 --duration 10 --traffic-type attack --method POST
    python -m waf_tester serve --port 8080
"""

import importlib
import sys

# Command -> (module under waf_tester.cli, one-line description)
COMMANDS = {
    "run": ("run_test", "Run a single test, print its statistics, optionally export and chart"),
    "serve": ("serve", "Start the HTTP API (JSON results and server-sent event streams)"),
}

HELP_TEXT = """WAF / Rate-Limit Tester

Sends paced HTTP traffic at a target and reports how its WAF or rate limiter
responds: status codes, blocked requests (403/406/429), the first blocked
request and latency percentiles.

Usage: python -m waf_tester <command> [options]

Commands:
{commands}

Common run options:
    --traffic-type normal|attack    Inject SQLi/XSS/traversal/command payloads with attack
    --test-mode baseline|burst      Spread requests evenly or send them in the first half
    --method, --header, --body      Shape the request (--header may be repeated)
    --user-agent-type, --custom-user-agent
                                    Choose the User-Agent pool or an exact string
    --error-mode                    Force 404s with a random path (normal traffic only)
    --payloads-dir DIR              Load payload and user-agent files from DIR
    --export json|csv               Write results to --exports-dir (default: exports)
    --charts                        Save response time and blocking charts as PNG

Examples:
    # 100 requests spread evenly over 10 seconds
    python -m waf_tester run --target-url https://example.com --requests 100 --duration 10

    # Front-load 100 requests into the first 5 of 10 seconds
    python -m waf_tester run --target-url https://example.com --requests 100 --duration 10 --test-mode burst

    # Attack traffic with custom payloads, exported as CSV
    python -m waf_tester run --target-url https://example.com/search --requests 50 --duration 10 \\
        --traffic-type attack --payloads-dir ./my-payloads --export csv

    # Start the API on port 8080 (or $PORT)
    python -m waf_tester serve --port 8080

Only test systems you are authorized to test.

For command-specific help:
    python -m waf_tester <command> --help
"""


def print_help():
    commands = "\n".join(
        f"    {name:<9} {description}" for name, (_, description) in COMMANDS.items()
    )
    print(HELP_TEXT.format(commands=commands))


def main():
    """Dispatch to the subcommand named in argv[1]."""
    if len(sys.argv) < 2:
        print_help()
        sys.exit(1)

    command = sys.argv[1]
    if command in ("-h", "--help", "help"):
        print_help()
        sys.exit(0)

    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        print_help()
        sys.exit(1)

    # Subcommand parsers see only their own arguments
    sys.argv = [f"{sys.argv[0]} {command}"] + sys.argv[2:]

    module_name, _ = COMMANDS[command]
    module = importlib.import_module(f"waf_tester.cli.{module_name}")
    module.main()


if __name__ == "__main__":
    main()
