from mangum import Mangum
import logging
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from faculty_credits import config
from faculty_credits.api import app

logging.basicConfig(level=config.LOG_LEVEL)

app.root_path = "/api"

handler = Mangum(app)
