import os

from skorbord import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Socket.IO server so /ws works in dev; clients on the LAN connect by host IP
    socketio.run(
        app,
        host=os.environ.get('HOST', '0.0.0.0'),
        port=int(os.environ.get('PORT', '2424')),
        debug=os.environ.get('FLASK_DEBUG', '1') == '1',
        allow_unsafe_werkzeug=True,
    )
