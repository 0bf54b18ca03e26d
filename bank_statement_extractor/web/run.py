"""
Entrypoint for running the local web server.
"""

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("BSE_LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    host = os.getenv("BSE_HOST", "127.0.0.1")
    port = int(os.getenv("BSE_PORT", "8000"))
    uvicorn.run("bank_statement_extractor.web.app:app", host=host, port=port, reload=True)


if __name__ == "__main__":
    main()
