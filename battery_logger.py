from flask import Flask, request, jsonify, Response
import json
import logging
import os
import threading

from row_upsert import get_schema, handle_submit, status
from sheet_store import BACKENDS, open_store

CONFIG_FILE = os.environ.get('BATTERY_LOGGER_CONFIG', 'logger_config.json')

# env var overriding each config key
ENV_OVERRIDES = {
    "spreadsheetId":   "BATTERY_SHEET_ID",
    "worksheet":       "BATTERY_WORKSHEET",
    "credentialsFile": "GOOGLE_APPLICATION_CREDENTIALS",
    "schema":          "BATTERY_SCHEMA",
    "backend":         "BATTERY_BACKEND",
    "host":            "BATTERY_HOST",
    "port":            "BATTERY_PORT",
}


class LoggerConfig:
    def __init__(self, path=CONFIG_FILE, environ=None):
        self.lock = threading.Lock()
        self.path = path
        self.config = {
            "spreadsheetId":   "1kQm7Yv3pZ2bN8cWd0sLrT5uFhJx9eGaVoBiD4nEq6Ks",
            "worksheet":       "Sheet1",
            "credentialsFile": "service_account.json",
            "schema":          "uuid",
            "backend":         "gsheets",
            "host":            "0.0.0.0",
            "port":            5000
        }
        self.load_config(os.environ if environ is None else environ)

    def load_config(self, environ):
        with self.lock:
            if os.path.exists(self.path):
                with open(self.path, 'r') as f:
                    self.config.update(json.load(f))
            for key, var in ENV_OVERRIDES.items():
                if environ.get(var):
                    self.config[key] = environ[var]
            self.config["port"] = int(self.config["port"])
            self.validate()

    def validate(self):
        get_schema(self.config["schema"])
        if self.config["backend"] not in BACKENDS:
            raise ValueError(f"Unknown backend {self.config['backend']!r}, expected one of {BACKENDS}")


def default_store_factory(create=True):
    return open_store(app.config['BATTERY'], create=create)


app = Flask(__name__)
app.config['BATTERY'] = LoggerConfig().config
app.config['STORE_FACTORY'] = default_store_factory


def current_schema():
    return get_schema(app.config['BATTERY']['schema'])


# ─── POST: ESP32 pushes battery telemetry ────────────────────────────────────
@app.route('/', methods=['POST'])
def submit_data():
    """
    Upserts one battery row. Takes a raw JSON body, or falls back to the
    form-encoded 'data=<json>' the ESP32 firmware can also send.
    Always answers 200; the device checks the envelope status.
    """
    if request.mimetype in ('application/x-www-form-urlencoded', 'multipart/form-data'):
        raw = request.form.get('data', '')
    else:
        raw = request.get_data(as_text=True)
    app.logger.debug("Received from ESP32: %s", raw)

    envelope = handle_submit(app.config['STORE_FACTORY'], current_schema(), raw)
    return jsonify(envelope), 200, {"Connection": "close"}


# ─── GET: liveness check, or ?action=clear to wipe data rows ─────────────────
@app.route('/', methods=['GET'])
def get_status():
    try:
        reply = status(app.config['STORE_FACTORY'], current_schema(), request.args.get('action'))
    except Exception as e:
        app.logger.exception("Status request failed")
        return Response(f"Error: {e}", status=500, mimetype='text/plain')
    return Response(reply.body, mimetype=reply.mimetype)


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    cfg = app.config['BATTERY']
    app.logger.info("Battery logger (%s schema, %s backend) on http://%s:%d",
                    cfg['schema'], cfg['backend'], cfg['host'], cfg['port'])
    app.run(host=cfg['host'], port=cfg['port'])
