"""`python -m berth agent-daemon ...` runs the agent, anything else goes to berthctl."""

import sys


def main():
    """Dispatch to the agent or the CLI."""
    if len(sys.argv) > 1 and sys.argv[1] == "agent-daemon":
        from berth.agent.__main__ import main as agent_main

        sys.argv = [f"{sys.argv[0]} agent-daemon"] + sys.argv[2:]
        agent_main()
        return

    from berth.cli.main import main as cli_main

    cli_main()


if __name__ == "__main__":
    main()
