"""Run the Kipu gateway: python -m kipu"""

import uvicorn

from kipu.config import load_config

config = load_config()
uvicorn.run("kipu.app:create_app", host=config.host, port=config.port, factory=True)
