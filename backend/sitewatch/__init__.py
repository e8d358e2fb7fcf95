"""Site health monitoring and alerting engine."""
