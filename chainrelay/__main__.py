from chainrelay.config import get_settings
from chainrelay.models.enums import Transport

if __name__ == "__main__":  # pragma: no cover
    settings = get_settings()

    if settings.transport == Transport.GATEWAY:
        import uvicorn

        from chainrelay.api.app import create_app
        from chainrelay.server import prepare_runtime

        prepare_runtime()
        uvicorn.run(
            create_app(settings),
            host=settings.host,
            port=settings.port,
            proxy_headers=True,
            forwarded_allow_ips=settings.forwarded_allow_ips,
        )
    else:
        from chainrelay.server import initialize

        app = initialize()
        if settings.transport == Transport.STREAMABLE_HTTP:
            app.run(transport="streamable-http", host=settings.host, port=settings.port)
        else:
            app.run()
