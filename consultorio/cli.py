from __future__ import annotations

import argparse
import getpass
from pathlib import Path

from consultorio.auth_service import crear_usuario, eliminar_usuario
from consultorio.estadisticas import FiltroTiempo
from consultorio.exportar import exportar_sesiones_excel, nombre_archivo
from consultorio.logging_config import setup_logging
from consultorio.models import Sentimiento, TipoPaciente
from consultorio.seed import seed_base
from consultorio.services import (
    crear_paciente,
    crear_sesion,
    estadisticas_horarias,
    estadisticas_periodicas,
    init_db,
    lista_categorias,
    lista_obras_sociales,
    lista_pacientes,
)


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("DB inicializada y seed completado.")


def cmd_crear_usuario(args: argparse.Namespace) -> None:
    password = args.password or getpass.getpass("Password: ")
    uid = crear_usuario(args.username, password)
    print(f"Usuario creado: {uid}")


def cmd_borrar_usuario(args: argparse.Namespace) -> None:
    ok = eliminar_usuario(args.username)
    print("Usuario eliminado." if ok else "Usuario no encontrado.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "pacientes":
        for p in lista_pacientes():
            print(
                f"{p['id']} | {p['nombre_paciente']} | {p['tipo_paciente']} | "
                f"{p['sesiones_completadas']}/{p['sesiones_totales']}"
            )
    elif args.entity == "categorias":
        for c in lista_categorias():
            print(f"{c['id']} | {c['nombre']} | {c['cantidad_pacientes']} pacientes")
    elif args.entity == "obras-sociales":
        for o in lista_obras_sociales():
            print(f"{o['id']} | {o['nombre']} | {o['cantidad_pacientes']} pacientes")


def cmd_add_patient(args: argparse.Namespace) -> None:
    pid = crear_paciente(
        nombre_paciente=args.nombre,
        sesiones_totales=args.sesiones,
        tipo_paciente=args.tipo,
        obra_social_id=args.obra_social_id,
        categoria_id=args.categoria_id,
        nota_lesion=args.nota,
        nombre_kinesiologo=args.kinesiologo,
    )
    print(f"Paciente creado: {pid}")


def cmd_add_session(args: argparse.Namespace) -> None:
    sid = crear_sesion(args.paciente_id, args.sentimiento)
    print(f"Sesión creada: {sid}" if sid else "Paciente no encontrado.")


def cmd_stats(args: argparse.Namespace) -> None:
    if args.vista == "horas":
        stats = estadisticas_horarias(args.fecha)
        for d in stats.datos:
            print(f"{d.hora_display:>6} | {'#' * d.cantidad} {d.cantidad}")
        pico = stats.hora_pico
        print(f"Total: {stats.total_sesiones}" + (f" | Hora pico: {pico}" if pico else ""))
    else:
        stats = estadisticas_periodicas(args.filtro)
        for d in stats.datos:
            print(f"{d.periodo:>24} | {'#' * d.cantidad} {d.cantidad}")
        print(f"Total: {stats.total_sesiones}")


def cmd_export(args: argparse.Namespace) -> None:
    contenido = exportar_sesiones_excel(args.desde, args.hasta)
    destino = Path(args.output or nombre_archivo(args.desde, args.hasta))
    destino.write_bytes(contenido)
    print(f"Excel generado: {destino}")


def cmd_demo(args: argparse.Namespace) -> None:
    from consultorio.genera_db_demo import genera_demo

    genera_demo(dias=args.dias, reset=not args.no_reset)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="consultorio_cli", description="CLI Consultorio de Kinesiología")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB y carga seed")
    p_init.set_defaults(func=cmd_init)

    p_user = sub.add_parser("crear-usuario", help="Crea un usuario del staff")
    p_user.add_argument("--username", required=True)
    p_user.add_argument("--password", default=None, help="Si se omite se pide por consola")
    p_user.set_defaults(func=cmd_crear_usuario)

    p_deluser = sub.add_parser("borrar-usuario", help="Elimina un usuario del staff")
    p_deluser.add_argument("--username", required=True)
    p_deluser.set_defaults(func=cmd_borrar_usuario)

    p_list = sub.add_parser("list", help="Lista entidades")
    p_list.add_argument("entity", choices=["pacientes", "categorias", "obras-sociales"])
    p_list.set_defaults(func=cmd_list)

    p_addp = sub.add_parser("add-patient", help="Crea paciente")
    p_addp.add_argument("--nombre", required=True)
    p_addp.add_argument("--sesiones", type=int, required=True, help="Sesiones totales del tratamiento")
    p_addp.add_argument("--tipo", choices=[t.value for t in TipoPaciente], default=TipoPaciente.PARTICULAR.value)
    p_addp.add_argument("--obra-social-id", default=None)
    p_addp.add_argument("--categoria-id", default=None)
    p_addp.add_argument("--nota", default=None, help="Nota sobre la lesión")
    p_addp.add_argument("--kinesiologo", default=None)
    p_addp.set_defaults(func=cmd_add_patient)

    p_adds = sub.add_parser("add-session", help="Registra la sesión de hoy")
    p_adds.add_argument("--paciente-id", required=True)
    p_adds.add_argument("--sentimiento", choices=[s.value for s in Sentimiento], required=True)
    p_adds.set_defaults(func=cmd_add_session)

    p_stats = sub.add_parser("stats", help="Histogramas de sesiones")
    stats_sub = p_stats.add_subparsers(dest="vista", required=True)
    p_horas = stats_sub.add_parser("horas", help="Sesiones por hora (07:00-20:00)")
    p_horas.add_argument("--fecha", default=None, help="DD-MM-YYYY; sin fecha, todas las sesiones")
    p_periodos = stats_sub.add_parser("periodos", help="Sesiones por período")
    p_periodos.add_argument("--filtro", choices=[f.value for f in FiltroTiempo], default=FiltroTiempo.MENSUAL.value)
    p_stats.set_defaults(func=cmd_stats)

    p_exp = sub.add_parser("export", help="Exporta sesiones a Excel")
    p_exp.add_argument("--desde", required=True, help="DD-MM-YYYY")
    p_exp.add_argument("--hasta", required=True, help="DD-MM-YYYY")
    p_exp.add_argument("--output", default=None)
    p_exp.set_defaults(func=cmd_export)

    p_demo = sub.add_parser("demo", help="Genera datos de demostración")
    p_demo.add_argument("--dias", type=int, default=90)
    p_demo.add_argument("--no-reset", action="store_true", help="No borra la DB antes de generar")
    p_demo.set_defaults(func=cmd_demo)

    return p


def main() -> None:
    setup_logging()
    parser = build_parser()
    args = parser.parse_args()
    init_db()  # garantiza tablas
    args.func(args)


if __name__ == "__main__":
    main()
