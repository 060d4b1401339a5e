def load_env_file() -> None:
    """Load environment variables from a local .env file.

    Existing environment variables are never overwritten, so a developer .env
    cannot shadow production configuration.
    """
    import logging
    from dotenv import load_dotenv

    logger = logging.getLogger(__name__)

    # Returns True when the file exists, even if it set nothing.
    loaded = load_dotenv(override=False)

    if loaded:
        logger.info("Loaded local .env file (existing variables were NOT overwritten)")
    else:
        logger.debug("No local .env file found or loaded")
