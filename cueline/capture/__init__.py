"""Speech capture: microphone input rolled into fixed-length clips."""
