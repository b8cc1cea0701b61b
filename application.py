"""
Process entry point for the ConveySafe payments service.
Hosting platforms that look for an `application` object import it from here.
"""

from conveysafe.config import settings
from conveysafe.main import app

application = app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(application, host=settings.app_host, port=settings.app_port)
