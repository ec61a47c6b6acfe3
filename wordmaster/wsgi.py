import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Путь к корню проекта
project_home = str(BASE_DIR)
if project_home not in sys.path:
    sys.path.insert(0, project_home)

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'wordmaster.settings')

from django.core.wsgi import get_wsgi_application
application = get_wsgi_application()
