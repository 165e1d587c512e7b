import uvicorn

import config

if __name__ == "__main__":
    # Browsers only allow camera capture over HTTPS (or localhost),
    # so front desk PCs on the LAN need the certificate pair.
    ssl_options = {}
    if config.SSL_KEYFILE and config.SSL_CERTFILE:
        ssl_options = {"ssl_keyfile": config.SSL_KEYFILE, "ssl_certfile": config.SSL_CERTFILE}

    uvicorn.run(
        "main:app",                     # FastAPI app lives in main.py
        host=config.HOST,
        port=config.PORT,
        reload=config.ENVIRONMENT == "development",
        **ssl_options
    )
