"""AWS Lambda entry points other than the API."""
