"""SmartBlob: bulk blob operations over remote object stores."""
