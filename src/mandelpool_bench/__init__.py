"""mandelpool-bench - timing harness for the mandelpool generation strategies."""
