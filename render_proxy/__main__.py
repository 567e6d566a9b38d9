import uvicorn

from render_proxy.vars import HOST, LOG_LEVEL, PORT


def main():
    uvicorn.run("render_proxy.server:app", host=HOST, port=PORT, log_level=LOG_LEVEL)


if __name__ == "__main__":
    main()
