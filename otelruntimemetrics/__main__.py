import sys

from otelruntimemetrics.app import main

sys.exit(main())
