from neigh import create_app
from neigh.extensions import socketio
from werkzeug.middleware.proxy_fix import ProxyFix

app = create_app()
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_for=1, x_host=1, x_port=1, x_prefix=1)

if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=5000)
