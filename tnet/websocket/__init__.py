"""WebSocket frames, options, control-frame handling and message connections."""