from samsync.db import engine
from samsync.models import Base

def main(bind=None):
    Base.metadata.create_all(bind=bind or engine)
    print("DB initialized.")

if __name__ == "__main__":
    main()
