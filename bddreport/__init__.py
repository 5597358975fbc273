"""Report generation for Gherkin test runs."""
