import json
import logging
from logging.handlers import HTTPHandler


class JSONFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
            # KMSStoreError: which step of the encrypted store failed
            stage = getattr(record.exc_info[1], 'stage', None)
            if stage:
                payload['stage'] = stage
        return json.dumps(payload)


def configure_json_logging(siem_endpoint: str | None = None, level=logging.INFO):
    logger = logging.getLogger()
    logger.setLevel(level)

    # Replace handlers from a previous call instead of stacking them
    for h in [h for h in logger.handlers if getattr(h, '_kvcrypt_json', False)]:
        logger.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    handler._kvcrypt_json = True
    logger.addHandler(handler)

    if siem_endpoint:
        # siem_endpoint format: host:port
        host, _, port = siem_endpoint.rpartition(':')
        if not host or not port.isdigit():
            raise ValueError(f"SIEM endpoint must be host:port, got {siem_endpoint!r}")
        http = HTTPHandler(siem_endpoint, '/ingest', method='POST')
        http.setFormatter(JSONFormatter())
        http._kvcrypt_json = True
        logger.addHandler(http)

    return logger
