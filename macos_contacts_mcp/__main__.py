from macos_contacts_mcp.server import run

if __name__ == "__main__":
    run()
