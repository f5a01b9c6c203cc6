import logging
import os

from cyclopts import App
from dotenv import load_dotenv

from promptbank.cli_commands.prompts import prompts_app
from promptbank.cli_commands.sync import sync_app

app = App(name="promptbank", help="Reusable prompt library with cloud sync")
app.command(prompts_app, name="prompts")
app.command(sync_app, name="sync")

load_dotenv()


def main():
    logging.basicConfig(
        level=os.environ.get("PROMPTBANK_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app()


if __name__ == "__main__":
    main()
