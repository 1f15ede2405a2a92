# Request dependencies shared by the API routers.
