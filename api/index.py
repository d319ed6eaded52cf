from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rider.config import settings

# Serverless filesystems are read-only outside /tmp.
if os.getenv("VERCEL") and not os.path.isabs(settings.DATA_DIR):
    settings.DATA_DIR = os.path.join("/tmp", settings.DATA_DIR)
    settings.AUDIT_LOG_FILE = os.path.join("/tmp", settings.AUDIT_LOG_FILE)

from rider.api import app

app.root_path = "/api"

handler = Mangum(app)
