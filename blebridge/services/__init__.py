"""Session, command and publication services shared by the device families."""
