"""
Vercel Serverless Entry Point for the Intercom-Asana Bridge
Uses Mangum to adapt FastAPI (ASGI) for serverless environments.
"""

import sys
import os

# Add the parent directory to the path so the flat modules import
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mangum import Mangum

from app import app

# Lifespan runs per cold start so the engine is built from the environment
handler = Mangum(app, lifespan="auto")
