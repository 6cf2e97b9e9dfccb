from img2heightmap.core import main_cli

main_cli()
