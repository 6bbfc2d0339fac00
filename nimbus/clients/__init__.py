"""REST, upload and download clients for the Nimbus backend."""
