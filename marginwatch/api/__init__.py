from aiohttp import web

# Shared handler context: stores, services and config
ctx_key = web.AppKey("ctx", dict)
