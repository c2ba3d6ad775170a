from flask import Flask, request

from api import contact, download, download_image, images, like, ping

# Vercel: export a WSGI Flask app named `app` exposing every handler under /api
app = Flask(__name__)

# Handlers answer disallowed methods themselves (JSON 405)
METHODS = ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']

ROUTES = {
    'images': images.handler,
    'like': like.handler,
    'download-image': download_image.handler,
    'download': download.handler,
    'contact': contact.handler,
    'ping': ping.handler,
}


def _register(name, fn):
    def view():
        return fn(request)
    endpoint = f"api_{name.replace('-', '_')}"
    app.add_url_rule(f'/api/{name}', endpoint, view, methods=METHODS)
    app.add_url_rule(f'/{name}', f'{endpoint}_bare', view, methods=METHODS)


for _name, _fn in ROUTES.items():
    _register(_name, _fn)
