"""Testing – fakes and helpers for exercising the processor without a real store or provider."""
