"""Home-school portal: meeting coordination and live role dashboards."""
